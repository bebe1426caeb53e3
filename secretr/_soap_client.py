"""Secret Server SOAP client.

Only the three ``SSWebService.asmx`` operations secretr needs are bound here:
``Authenticate``, ``GetSecret`` and ``DownloadFileAttachmentByItemId``. Each
call posts a SOAP 1.1 envelope with :mod:`httpx` and converts the response
into plain dictionaries. A secret's ``Items`` are returned keyed by field
name; :func:`secretr._normalise.normalise_secret` turns them back into a list.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import xml.etree.ElementTree as ET
from collections import abc as cabc
from contextlib import asynccontextmanager
from typing import Any, Protocol
from urllib.parse import urlsplit, urlunsplit

import httpx

from secretr._errors import RetrievalError
from secretr._models import Attachment, ConnectionConfig, SecretId, SecretRecord

logger = logging.getLogger(__name__)

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SERVICE_NS = "urn:thesecretserver.com"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"

DEFAULT_TIMEOUT = httpx.Timeout(60.0)

_INT_FIELDS = frozenset(
    {"Id", "FieldId", "SecretTypeId", "FolderId", "CheckOutMinutesRemaining", "CheckOutUserId"}
)
_BOOL_FIELDS = frozenset(
    {
        "IsFile",
        "IsNotes",
        "IsPassword",
        "IsWebLauncher",
        "IsCheckedOut",
        "IsOutOfSync",
        "IsRestricted",
        "Active",
    }
)
_LIST_FIELDS = frozenset({"Items", "Errors"})


class SecretClient(Protocol):
    """Capability the retrieval orchestrator depends on."""

    async def fetch_secret(self, secret_id: SecretId) -> SecretRecord: ...

    async def fetch_attachment(self, secret_id: SecretId, field_name: str) -> Attachment: ...


def service_url(endpoint: str) -> str:
    """Return the SOAP endpoint for a WSDL URL by dropping its query string.

    Examples
    --------
    >>> service_url("https://ss.example/webservices/SSWebService.asmx?WSDL")
    'https://ss.example/webservices/SSWebService.asmx'
    """

    parts = urlsplit(endpoint)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _soap_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_envelope(operation: str, params: cabc.Sequence[tuple[str, object]]) -> bytes:
    """Serialise a SOAP 1.1 request body for ``operation``."""

    envelope = ET.Element(f"{{{SOAP_ENV_NS}}}Envelope")
    body = ET.SubElement(envelope, f"{{{SOAP_ENV_NS}}}Body")
    call = ET.SubElement(body, f"{{{SERVICE_NS}}}{operation}")
    for name, value in params:
        if value is None:
            continue
        ET.SubElement(call, f"{{{SERVICE_NS}}}{name}").text = _soap_text(value)
    return ET.tostring(envelope, encoding="utf-8", xml_declaration=True)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _scalar(name: str, text: str | None) -> Any:
    if name in _INT_FIELDS:
        return int(text) if text and text.strip() else None
    if name in _BOOL_FIELDS:
        return (text or "").strip().lower() == "true"
    return text or ""


def element_to_value(element: ET.Element) -> Any:
    """Convert a response element into dictionaries, lists and scalars.

    Examples
    --------
    >>> xml = '<Errors xmlns="urn:thesecretserver.com"><string>Access denied</string></Errors>'
    >>> element_to_value(ET.fromstring(xml))
    ['Access denied']
    """

    if element.get(f"{{{XSI_NS}}}nil") == "true":
        return None
    name = _local_name(element.tag)
    children = list(element)
    if name in _LIST_FIELDS:
        return [element_to_value(child) for child in children]
    if not children:
        return _scalar(name, element.text)
    return {_local_name(child.tag): element_to_value(child) for child in children}


def _fault_message(root: ET.Element) -> str | None:
    fault = root.find(f".//{{{SOAP_ENV_NS}}}Fault")
    if fault is None:
        return None
    faultstring = fault.findtext("faultstring") or fault.findtext(f"{{{SOAP_ENV_NS}}}faultstring")
    return (faultstring or "SOAP fault").strip()


def parse_response(operation: str, status_code: int, content: bytes) -> dict[str, Any]:
    """Extract ``<operation>Result`` from a response, raising on any error."""

    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        msg = f"{operation} returned an unreadable response (HTTP {status_code}): {exc}"
        raise RetrievalError(msg) from exc
    fault = _fault_message(root)
    if fault is not None:
        raise RetrievalError(fault)
    if status_code >= 400:
        raise RetrievalError(f"{operation} failed with HTTP {status_code}")
    result = root.find(
        f"{{{SOAP_ENV_NS}}}Body/{{{SERVICE_NS}}}{operation}Response/{{{SERVICE_NS}}}{operation}Result"
    )
    if result is None:
        raise RetrievalError(f"{operation} response did not contain a result")
    payload = element_to_value(result)
    if not isinstance(payload, dict):
        raise RetrievalError(f"{operation} returned an empty result")
    errors = [error for error in payload.get("Errors") or [] if error]
    if errors:
        raise RetrievalError("; ".join(errors))
    return payload


def secret_record(secret: cabc.Mapping[str, Any]) -> SecretRecord:
    """Key a SOAP ``Secret``'s item list by field name.

    Examples
    --------
    >>> secret_record({"Id": 7, "Name": "db", "Items": [{"FieldName": "Password", "Value": "x"}]})
    {'Id': 7, 'Name': 'db', 'Items': {'Password': {'FieldName': 'Password', 'Value': 'x'}}}
    """

    record = dict(secret)
    record["Items"] = {item["FieldName"]: item for item in secret.get("Items") or []}
    return record


class SecretServerClient:
    """Authenticated session against one Secret Server instance.

    The session token is requested on first use and shared by every
    concurrent call made through the same client.
    """

    def __init__(self, config: ConnectionConfig, http: httpx.AsyncClient) -> None:
        self._config = config
        self._http = http
        self._url = service_url(config.endpoint)
        self._token: str | None = None
        self._auth_error: RetrievalError | None = None
        self._auth_lock = asyncio.Lock()

    async def _call(self, operation: str, params: cabc.Sequence[tuple[str, object]]) -> dict[str, Any]:
        headers = {
            "Content-Type": "text/xml; charset=utf-8",
            "SOAPAction": f'"{SERVICE_NS}/{operation}"',
        }
        try:
            response = await self._http.post(
                self._url,
                content=build_envelope(operation, params),
                headers=headers,
            )
        except httpx.HTTPError as exc:
            msg = f"{operation} request to {self._url} failed: {exc}"
            raise RetrievalError(msg) from exc
        return parse_response(operation, response.status_code, response.content)

    async def _session_token(self) -> str:
        """Return the session token, authenticating at most once per client.

        A failed login is remembered and re-raised for every later call.
        """

        async with self._auth_lock:
            if self._auth_error is not None:
                raise RetrievalError(str(self._auth_error)) from self._auth_error
            if self._token is None:
                try:
                    self._token = await self._authenticate()
                except RetrievalError as exc:
                    self._auth_error = exc
                    raise
            return self._token

    async def _authenticate(self) -> str:
        logger.debug("Authenticating %s against %s", self._config.username, self._url)
        result = await self._call(
            "Authenticate",
            [
                ("username", self._config.username),
                ("password", self._config.password),
                ("organization", self._config.organization),
                ("domain", self._config.domain),
            ],
        )
        token = result.get("Token")
        if not token:
            raise RetrievalError("Authenticate did not return a session token")
        return token

    async def fetch_secret(self, secret_id: SecretId) -> SecretRecord:
        """Return the secret with ``secret_id``, its items keyed by field name."""

        token = await self._session_token()
        result = await self._call(
            "GetSecret",
            [
                ("token", token),
                ("secretId", secret_id),
                ("loadSettingsAndPermissions", False),
            ],
        )
        secret = result.get("Secret")
        if not secret:
            raise RetrievalError(f"Secret {secret_id} was not returned by the server")
        return secret_record(secret)

    async def fetch_attachment(self, secret_id: SecretId, field_name: str) -> Attachment:
        """Download the file stored in the ``field_name`` field of a secret."""

        secret = await self.fetch_secret(secret_id)
        item = _find_file_item(secret, field_name)
        token = await self._session_token()
        result = await self._call(
            "DownloadFileAttachmentByItemId",
            [
                ("token", token),
                ("secretId", secret_id),
                ("secretItemId", item.get("Id")),
            ],
        )
        try:
            content = base64.b64decode(result.get("FileAttachment") or "", validate=True)
        except (binascii.Error, ValueError) as exc:
            msg = f"Attachment {field_name!r} of secret {secret_id} is not valid base64"
            raise RetrievalError(msg) from exc
        return Attachment(file_name=result.get("FileName") or None, content=content)


def _find_file_item(secret: cabc.Mapping[str, Any], field_name: str) -> cabc.Mapping[str, Any]:
    wanted = field_name.casefold()
    for item in (secret.get("Items") or {}).values():
        names = {str(item.get("FieldName") or "").casefold(), str(item.get("FieldDisplayName") or "").casefold()}
        if wanted in names:
            if not item.get("IsFile"):
                msg = f"Field {field_name!r} of secret {secret.get('Id')} is not a file attachment"
                raise RetrievalError(msg)
            return item
    msg = f"Secret {secret.get('Id')} has no field named {field_name!r}"
    raise RetrievalError(msg)


@asynccontextmanager
async def open_secret_client(
    config: ConnectionConfig,
    *,
    timeout: httpx.Timeout = DEFAULT_TIMEOUT,
) -> cabc.AsyncIterator[SecretServerClient]:
    """Yield a client bound to ``config``, closing its HTTP pool on exit."""

    async with httpx.AsyncClient(timeout=timeout) as http:
        yield SecretServerClient(config, http)


__all__ = [
    "SecretClient",
    "SecretServerClient",
    "build_envelope",
    "element_to_value",
    "open_secret_client",
    "parse_response",
    "secret_record",
    "service_url",
]
