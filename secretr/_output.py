"""Serialise results to stdout or files and report diagnostics on stderr."""

from __future__ import annotations

import json
import os
import sys
from contextlib import suppress
from pathlib import Path
from typing import Any, TextIO

import jmespath
from jmespath.exceptions import JMESPathError
from rich.console import Console
from rich.markup import escape

from secretr._errors import FilterError, OutputWriteError
from secretr._models import OutputOptions


def serialise(value: Any, options: OutputOptions) -> str:
    """Render ``value`` according to ``options``.

    Examples
    --------
    >>> serialise({"Secrets": []}, OutputOptions())
    '{"Secrets": []}'
    >>> serialise("s3cret", OutputOptions(raw=True, pretty=True))
    's3cret'
    """

    if options.raw:
        return str(value)
    if options.pretty:
        return json.dumps(value, indent="\t")
    return json.dumps(value)


def emit(value: Any, options: OutputOptions, stream: TextIO | None = None) -> None:
    """Write the serialised ``value`` followed by a newline to stdout."""

    target = sys.stdout if stream is None else stream
    target.write(f"{serialise(value, options)}\n")
    target.flush()


def apply_filter(document: Any, expression: str) -> Any:
    """Project ``document`` through a JMESPath ``expression``.

    Examples
    --------
    >>> apply_filter({"Secrets": [{"Id": 101}, {"Id": 202}]}, "Secrets[*].Id")
    [101, 202]
    """

    try:
        return jmespath.search(expression, document)
    except JMESPathError as exc:
        msg = f"Invalid filter expression {expression!r}: {exc}"
        raise FilterError(msg) from exc


def validate_filter(expression: str) -> None:
    """Raise :class:`FilterError` when ``expression`` does not compile."""

    try:
        jmespath.compile(expression)
    except JMESPathError as exc:
        msg = f"Invalid filter expression {expression!r}: {exc}"
        raise FilterError(msg) from exc


def _write_private(path: Path, payload: bytes) -> None:
    """Write ``payload`` to ``path`` atomically with owner-only permissions."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")

    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
    except Exception:
        with suppress(FileNotFoundError):
            os.unlink(tmp_path)
        raise

    tmp_path.replace(path)
    os.chmod(path, 0o600)


def write_secret_file(path: Path, content: str) -> None:
    """Persist one serialised secret, raising :class:`OutputWriteError` on failure."""

    try:
        _write_private(path, f"{content}\n".encode("utf-8"))
    except OSError as exc:
        msg = f"Failed to write {path}: {exc}"
        raise OutputWriteError(msg) from exc


def write_attachment(content: bytes, path: Path | None = None) -> None:
    """Write attachment bytes to ``path``, or to the binary stdout buffer."""

    if path is None:
        sys.stdout.buffer.write(content)
        sys.stdout.buffer.flush()
        return
    try:
        _write_private(path, content)
    except OSError as exc:
        msg = f"Failed to write {path}: {exc}"
        raise OutputWriteError(msg) from exc


def report_error(message: str, stream: TextIO | None = None) -> None:
    """Print ``message`` in red on the diagnostic stream."""

    console = Console(file=sys.stderr if stream is None else stream, highlight=False)
    console.print(f"[red]{escape(message)}[/red]", soft_wrap=True)


__all__ = [
    "apply_filter",
    "emit",
    "report_error",
    "serialise",
    "validate_filter",
    "write_attachment",
    "write_secret_file",
]
