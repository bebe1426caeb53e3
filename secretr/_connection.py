"""Resolve Secret Server connection settings from every configured source.

Each field is resolved independently in strict priority order: explicit CLI
value, ``SECRETR_*`` environment variable, batch configuration file, and
finally an interactive prompt for the credentials. The endpoint is never
prompted for; when it cannot be resolved the run aborts before any request
is made.
"""

from __future__ import annotations

import logging
import os
import re
from collections import abc as cabc
from dataclasses import dataclass

from secretr._errors import ConfigurationError
from secretr._input_resolution import InputResolution, Prompter, resolve_input
from secretr._models import ConnectionConfig

logger = logging.getLogger(__name__)

CANONICAL_WSDL_SUFFIX = "SSWebService.asmx?WSDL"
_WSDL_SUFFIX_PATTERN = re.compile(r"sswebservice\.asmx\?wsdl", re.IGNORECASE)

WSDL_INPUT = InputResolution(env_key="SECRETR_WSDL", config_key="wsdl")
USERNAME_INPUT = InputResolution(
    env_key="SECRETR_USERNAME",
    config_key="username",
    required=True,
    prompt="username",
)
PASSWORD_INPUT = InputResolution(
    env_key="SECRETR_PASSWORD",
    config_key="password",
    required=True,
    prompt="password",
    hidden=True,
)
ORGANIZATION_INPUT = InputResolution(
    env_key="SECRETR_ORGANIZATION", config_key="organization", default=""
)
DOMAIN_INPUT = InputResolution(env_key="SECRETR_DOMAIN", config_key="domain", default="")


@dataclass(frozen=True, slots=True)
class RawConnectionInputs:
    """Connection values supplied on the command line, if any."""

    wsdl: str | None = None
    username: str | None = None
    password: str | None = None
    organization: str | None = None
    domain: str | None = None


@dataclass(frozen=True, slots=True)
class EnvContext:
    """Environment resolution context."""

    env: cabc.Mapping[str, str]

    @classmethod
    def from_os_environ(cls) -> EnvContext:
        """Create context from os.environ."""

        return cls(env=os.environ)


def normalise_endpoint(endpoint: str) -> str:
    """Rewrite the WSDL path segment to the casing Secret Server expects.

    Examples
    --------
    >>> normalise_endpoint("http://host/sswebservice.ASMX?WSDL")
    'http://host/SSWebService.asmx?WSDL'
    >>> normalise_endpoint("https://ss.example/SecretServer/webservices/SSWebService.asmx?wsdl")
    'https://ss.example/SecretServer/webservices/SSWebService.asmx?WSDL'
    """

    return _WSDL_SUFFIX_PATTERN.sub(CANONICAL_WSDL_SUFFIX, endpoint.strip())


def _resolve_endpoint(
    raw: RawConnectionInputs,
    context: EnvContext,
    file_values: cabc.Mapping[str, str] | None,
) -> str:
    endpoint = resolve_input(raw.wsdl, WSDL_INPUT, env=context.env, file_values=file_values)
    if not endpoint or not str(endpoint).strip():
        msg = (
            "No Secret Server WSDL URL configured; pass --wsdl, set SECRETR_WSDL "
            "or add 'wsdl' to the batch configuration"
        )
        raise ConfigurationError(msg)
    return normalise_endpoint(str(endpoint))


def _resolve_text(
    value: str | None,
    resolution: InputResolution,
    *,
    context: EnvContext,
    file_values: cabc.Mapping[str, str] | None,
    prompter: Prompter | None,
) -> str:
    resolved = resolve_input(
        value,
        resolution,
        env=context.env,
        file_values=file_values,
        prompter=prompter,
    )
    return "" if resolved is None else str(resolved)


def resolve_connection(
    raw: RawConnectionInputs,
    *,
    context: EnvContext | None = None,
    file_values: cabc.Mapping[str, str] | None = None,
    prompter: Prompter | None = None,
) -> ConnectionConfig:
    """Build the immutable connection settings for this invocation.

    Parameters
    ----------
    raw : RawConnectionInputs
        Values passed explicitly on the command line.
    context : EnvContext | None, optional
        Environment to consult; defaults to ``os.environ``.
    file_values : Mapping[str, str] | None, optional
        Connection values declared in a batch configuration file.
    prompter : Prompter | None, optional
        Interactive fallback for the username and password. Without one,
        missing credentials raise :class:`ConfigurationError`.

    Returns
    -------
    ConnectionConfig
        Fully resolved settings with a normalised endpoint.

    Raises
    ------
    ConfigurationError
        If the endpoint or a credential cannot be resolved. The endpoint is
        checked first so a missing URL never triggers a prompt.
    """

    context = context or EnvContext.from_os_environ()
    endpoint = _resolve_endpoint(raw, context, file_values)
    username = _resolve_text(
        raw.username,
        USERNAME_INPUT,
        context=context,
        file_values=file_values,
        prompter=prompter,
    )
    password = _resolve_text(
        raw.password,
        PASSWORD_INPUT,
        context=context,
        file_values=file_values,
        prompter=prompter,
    )
    if not username or not password:
        raise ConfigurationError("Secret Server username and password must not be empty")
    organization = _resolve_text(
        raw.organization,
        ORGANIZATION_INPUT,
        context=context,
        file_values=file_values,
        prompter=None,
    )
    domain = _resolve_text(
        raw.domain,
        DOMAIN_INPUT,
        context=context,
        file_values=file_values,
        prompter=None,
    )
    logger.debug("Resolved Secret Server endpoint %s for user %s", endpoint, username)
    return ConnectionConfig(
        endpoint=endpoint,
        username=username,
        password=password,
        organization=organization,
        domain=domain,
    )


__all__ = [
    "CANONICAL_WSDL_SUFFIX",
    "EnvContext",
    "RawConnectionInputs",
    "normalise_endpoint",
    "resolve_connection",
]
