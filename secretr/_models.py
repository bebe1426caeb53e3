"""Data models shared by the secretr resolution and retrieval pipeline.

These models keep the data flow explicit across module boundaries: the
connection settings are resolved once into :class:`ConnectionConfig`, each
requested secret is a :class:`SecretRequest`, and every fetch settles into a
:class:`SecretRetrieved` or :class:`SecretFailed` value.

Examples
--------
>>> SecretRequest.from_token("101").secret_id
101
>>> SecretFailed(SecretRequest(202), "not found").to_record()
{'Id': 202, 'Error': 'not found', 'RetrievalStatus': 'Error'}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

SecretId = int | str
SecretRecord = dict[str, Any]

STATUS_OK = "Ok"
STATUS_ERROR = "Error"


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Resolved Secret Server connection settings.

    Attributes
    ----------
    endpoint
        URL of the ``SSWebService.asmx?WSDL`` interface description.
    username, password
        Credentials forwarded to the ``Authenticate`` call.
    organization, domain
        Optional organisation code and Active Directory domain.
    """

    endpoint: str
    username: str
    password: str = field(repr=False)
    organization: str = ""
    domain: str = ""


@dataclass(frozen=True, slots=True)
class SecretRequest:
    """A single secret to retrieve and, in batch mode, where to write it."""

    secret_id: SecretId
    output_path: Path | None = None

    @classmethod
    def from_token(cls, token: SecretId, output_path: Path | None = None) -> SecretRequest:
        """Build a request, coercing ASCII decimal identifiers to ``int``.

        Examples
        --------
        >>> SecretRequest.from_token(" 42 ").secret_id
        42
        >>> SecretRequest.from_token("db-admin").secret_id
        'db-admin'
        """

        if isinstance(token, str):
            candidate = token.strip()
            secret_id: SecretId = int(candidate) if candidate.isascii() and candidate.isdigit() else candidate
        else:
            secret_id = token
        return cls(secret_id=secret_id, output_path=output_path)


@dataclass(frozen=True, slots=True)
class SecretRetrieved:
    """A secret that was fetched and normalised successfully."""

    request: SecretRequest
    secret: SecretRecord

    @property
    def ok(self) -> bool:
        return True

    def to_record(self) -> SecretRecord:
        return self.secret


@dataclass(frozen=True, slots=True)
class SecretFailed:
    """A secret whose retrieval failed; carries the error message."""

    request: SecretRequest
    error: str

    @property
    def ok(self) -> bool:
        return False

    def to_record(self) -> SecretRecord:
        return {
            "Id": self.request.secret_id,
            "Error": self.error,
            "RetrievalStatus": STATUS_ERROR,
        }


RetrievalResult = SecretRetrieved | SecretFailed


@dataclass(frozen=True, slots=True)
class Attachment:
    """File attachment downloaded from a secret field."""

    file_name: str | None
    content: bytes = field(repr=False)


@dataclass(frozen=True, slots=True)
class BatchConfig:
    """Parsed batch configuration file.

    Attributes
    ----------
    path
        Location of the configuration file.
    base_dir
        Directory relative output paths are resolved against.
    values
        Connection values declared in the file (``wsdl``, ``username``, ...).
    entries
        Secrets to fetch, each with a resolved output path.
    """

    path: Path
    base_dir: Path
    values: dict[str, str]
    entries: tuple[SecretRequest, ...]


@dataclass(frozen=True, slots=True)
class OutputOptions:
    """Serialisation switches; ``raw`` takes precedence over ``pretty``."""

    raw: bool = False
    pretty: bool = False


@dataclass(frozen=True, slots=True)
class BatchSummary:
    """Outcome counts for a configuration-driven batch."""

    written: int
    failed: int

    @property
    def ok(self) -> bool:
        return self.failed == 0


__all__ = [
    "STATUS_ERROR",
    "STATUS_OK",
    "Attachment",
    "BatchConfig",
    "BatchSummary",
    "ConnectionConfig",
    "OutputOptions",
    "RetrievalResult",
    "SecretFailed",
    "SecretId",
    "SecretRecord",
    "SecretRequest",
    "SecretRetrieved",
]
