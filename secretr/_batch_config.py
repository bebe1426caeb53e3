"""Load the YAML batch configuration used by config-driven mode.

A batch file declares the secrets to fetch and where to write each one, plus
optional connection values::

    wsdl: https://ss.example/SecretServer/webservices/SSWebService.asmx?WSDL
    secrets:
      - id: 101
        outfile: secrets/db.json
      - id: 202
        outfile: /etc/app/api.json

Relative ``outfile`` paths are resolved against the directory holding the
configuration file.
"""

from __future__ import annotations

import logging
from collections import abc as cabc
from pathlib import Path
from typing import Any

import yaml

from secretr._errors import BatchConfigError
from secretr._models import BatchConfig, SecretRequest

logger = logging.getLogger(__name__)

CONNECTION_KEYS = ("wsdl", "username", "password", "organization", "domain")


def resolve_output_path(outfile: str | Path, base_dir: Path) -> Path:
    """Return ``outfile`` as-is when absolute, otherwise relative to ``base_dir``.

    Examples
    --------
    >>> resolve_output_path("out/db.json", Path("/etc/secretr"))
    PosixPath('/etc/secretr/out/db.json')
    >>> resolve_output_path("/tmp/db.json", Path("/etc/secretr"))
    PosixPath('/tmp/db.json')
    """

    path = Path(outfile).expanduser()
    return path if path.is_absolute() else base_dir / path


def _read_document(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read batch configuration {path}: {exc}"
        raise BatchConfigError(msg) from exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"Failed to parse batch configuration {path}: {exc}"
        raise BatchConfigError(msg) from exc


def _connection_values(document: cabc.Mapping[str, Any]) -> dict[str, str]:
    values: dict[str, str] = {}
    for key in CONNECTION_KEYS:
        value = document.get(key)
        if value is None:
            continue
        if not isinstance(value, (str, int)):
            msg = f"Batch configuration field {key!r} must be a string"
            raise BatchConfigError(msg)
        values[key] = str(value)
    return values


def _parse_entry(index: int, entry: Any, base_dir: Path) -> SecretRequest:
    if not isinstance(entry, cabc.Mapping):
        msg = f"secrets[{index}] must be a mapping with 'id' and 'outfile'"
        raise BatchConfigError(msg)
    secret_id = entry.get("id")
    if isinstance(secret_id, bool) or not isinstance(secret_id, (int, str)) or secret_id == "":
        msg = f"secrets[{index}].id must be a secret identifier"
        raise BatchConfigError(msg)
    outfile = entry.get("outfile")
    if not isinstance(outfile, str) or not outfile.strip():
        msg = f"secrets[{index}].outfile must be a non-empty path"
        raise BatchConfigError(msg)
    return SecretRequest.from_token(
        secret_id,
        output_path=resolve_output_path(outfile.strip(), base_dir),
    )


def load_batch_config(path: Path) -> BatchConfig:
    """Parse the batch file at ``path``.

    Parameters
    ----------
    path : Path
        Location of the YAML batch configuration.

    Returns
    -------
    BatchConfig
        Connection values and the secrets to fetch, with output paths resolved
        against the configuration file's directory.

    Raises
    ------
    BatchConfigError
        If the file cannot be read, is not valid YAML, or does not match the
        expected shape.
    """

    document = _read_document(path)
    if not isinstance(document, cabc.Mapping):
        msg = f"Batch configuration {path} must be a mapping"
        raise BatchConfigError(msg)
    secrets = document.get("secrets")
    if not isinstance(secrets, list) or not secrets:
        msg = f"Batch configuration {path} must list at least one entry under 'secrets'"
        raise BatchConfigError(msg)

    base_dir = path.resolve().parent
    entries = tuple(_parse_entry(index, entry, base_dir) for index, entry in enumerate(secrets))
    logger.debug("Loaded %d batch entries from %s", len(entries), path)
    return BatchConfig(
        path=path,
        base_dir=base_dir,
        values=_connection_values(document),
        entries=entries,
    )


__all__ = ["CONNECTION_KEYS", "load_batch_config", "resolve_output_path"]
