#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.11"
# dependencies = ["cyclopts>=3", "httpx", "jmespath", "pyyaml", "rich"]
# ///
"""Retrieve secrets from Thycotic Secret Server and emit them as JSON.

Direct mode fetches the secrets named on the command line and prints one
``{"Secrets": [...]}`` envelope. Batch mode reads a YAML file listing secrets
and output paths and writes each secret to its own file. Both modes:

- resolve the endpoint and credentials from flags, ``SECRETR_*`` environment
  variables, the batch file, or an interactive prompt;
- fetch every secret concurrently, turning per-secret failures into error
  records instead of aborting the run; and
- keep stdout for results, with diagnostics on stderr.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections import abc as cabc
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from secretr._batch_config import load_batch_config
from secretr._connection import EnvContext, RawConnectionInputs, resolve_connection
from secretr._errors import ConfigurationError, SecretrError
from secretr._input_resolution import InputResolution, Prompter, resolve_input
from secretr._models import BatchConfig, ConnectionConfig, OutputOptions, RetrievalResult, SecretRequest
from secretr._output import (
    apply_filter,
    emit,
    report_error,
    validate_filter,
    write_attachment,
)
from secretr._retrieval import build_envelope, fetch_all, requests_from_args, write_results
from secretr._soap_client import open_secret_client

VERSION = "0.1.0"

app = App(
    name="secretr",
    help="Retrieve secrets from Thycotic Secret Server as JSON.",
    version=VERSION,
)
logger = logging.getLogger(__name__)

CONCURRENCY_INPUT = InputResolution(env_key="SECRETR_CONCURRENCY")


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _resolve_concurrency(value: int | None, context: EnvContext) -> int | None:
    raw_value = resolve_input(
        None if value is None else str(value),
        CONCURRENCY_INPUT,
        env=context.env,
    )
    if raw_value is None or raw_value == "":
        return None
    try:
        limit = int(str(raw_value))
    except ValueError as exc:
        msg = f"SECRETR_CONCURRENCY must be an integer, got: {raw_value!r}"
        raise ConfigurationError(msg) from exc
    if limit < 0:
        raise ConfigurationError("--concurrency must not be negative")
    return limit or None


def _validate_mode(
    secret_ids: cabc.Sequence[str],
    *,
    config: Path | None,
    attachment_name: str | None,
    outfile: Path | None,
) -> None:
    if config is not None and secret_ids:
        raise ConfigurationError("Secret identifiers cannot be combined with --config")
    if config is None and not secret_ids:
        raise ConfigurationError("Provide at least one secret identifier or --config")
    if attachment_name is not None:
        if config is not None:
            raise ConfigurationError("--attachment-name cannot be combined with --config")
        if len(secret_ids) != 1:
            raise ConfigurationError("--attachment-name requires exactly one secret identifier")
    elif outfile is not None:
        raise ConfigurationError("--outfile is only supported with --attachment-name")


def _default_prompter() -> Prompter | None:
    """Return a terminal prompter, or ``None`` when stdin is not interactive."""

    return Prompter.from_terminal() if sys.stdin.isatty() else None


async def _retrieve(
    connection: ConnectionConfig,
    requests: cabc.Sequence[SecretRequest],
    *,
    simple: bool,
    concurrency: int | None,
) -> list[RetrievalResult]:
    async with open_secret_client(connection) as client:
        return await fetch_all(client, requests, simple=simple, concurrency=concurrency)


async def _download_attachment(
    connection: ConnectionConfig,
    request: SecretRequest,
    field_name: str,
    outfile: Path | None,
) -> None:
    async with open_secret_client(connection) as client:
        attachment = await client.fetch_attachment(request.secret_id, field_name)
    write_attachment(attachment.content, outfile)
    if outfile is not None:
        logger.info("Wrote attachment %s of secret %s to %s", field_name, request.secret_id, outfile)


def run_direct(
    connection: ConnectionConfig,
    requests: cabc.Sequence[SecretRequest],
    *,
    options: OutputOptions,
    simple: bool = False,
    concurrency: int | None = None,
    filter_expression: str | None = None,
) -> list[RetrievalResult]:
    """Fetch ``requests`` and emit the (optionally filtered) envelope on stdout."""

    results = asyncio.run(_retrieve(connection, requests, simple=simple, concurrency=concurrency))
    envelope = build_envelope(results)
    if filter_expression:
        emit(apply_filter(envelope, filter_expression), options)
    else:
        emit(envelope, options)
    return results


def run_batch(
    connection: ConnectionConfig,
    batch: BatchConfig,
    *,
    options: OutputOptions,
    simple: bool = False,
    concurrency: int | None = None,
    filter_expression: str | None = None,
) -> bool:
    """Fetch the batch entries and write each secret to its output path.

    Returns ``True`` when every secret was retrieved and written.
    """

    results = asyncio.run(
        _retrieve(connection, batch.entries, simple=simple, concurrency=concurrency)
    )
    summary = write_results(results, options, filter_expression)
    return summary.ok


@app.default
def main(
    *secret_ids: str,
    username: Annotated[str | None, Parameter(name=["--username", "-u"])] = None,
    password: Annotated[str | None, Parameter(name=["--password", "-p"])] = None,
    wsdl: Annotated[str | None, Parameter(name=["--wsdl", "-w"])] = None,
    organization: Annotated[str | None, Parameter(name="--organization")] = None,
    domain: Annotated[str | None, Parameter(name="--domain")] = None,
    config: Annotated[Path | None, Parameter(name=["--config", "-c"])] = None,
    filter_expression: Annotated[str | None, Parameter(name=["--filter", "-f"])] = None,
    pretty: Annotated[bool, Parameter(name="--pretty", negative="")] = False,
    raw: Annotated[bool, Parameter(name="--raw", negative="")] = False,
    simple: Annotated[bool, Parameter(name=["--simple", "-s"], negative="")] = False,
    attachment_name: Annotated[str | None, Parameter(name=["--attachment-name", "-a"])] = None,
    outfile: Annotated[Path | None, Parameter(name=["--outfile", "-o"])] = None,
    concurrency: Annotated[int | None, Parameter(name="--concurrency")] = None,
    fail_on_error: Annotated[bool, Parameter(name="--fail-on-error", negative="")] = False,
    verbose: Annotated[bool, Parameter(name=["--verbose", "-v"], negative="")] = False,
) -> int:
    """Retrieve secrets by identifier and print them as JSON.

    Parameters
    ----------
    secret_ids : str
        Identifiers of the secrets to retrieve.
    username : str | None, optional
        Secret Server username; falls back to ``SECRETR_USERNAME``.
    password : str | None, optional
        Secret Server password; falls back to ``SECRETR_PASSWORD``.
    wsdl : str | None, optional
        URL of ``SSWebService.asmx?WSDL``; falls back to ``SECRETR_WSDL``.
    organization : str | None, optional
        Organisation code; falls back to ``SECRETR_ORGANIZATION``.
    domain : str | None, optional
        Active Directory domain; falls back to ``SECRETR_DOMAIN``.
    config : Path | None, optional
        YAML batch file listing secrets and their output files.
    filter_expression : str | None, optional
        JMESPath expression applied to the output.
    pretty : bool, optional
        Pretty print JSON output.
    raw : bool, optional
        Print the value without JSON encoding; useful with ``--filter``.
    simple : bool, optional
        Output a simplified version of each secret.
    attachment_name : str | None, optional
        Download only this file attachment field of a single secret.
    outfile : Path | None, optional
        Destination for ``--attachment-name``; defaults to stdout.
    concurrency : int | None, optional
        Maximum concurrent requests; falls back to ``SECRETR_CONCURRENCY``.
    fail_on_error : bool, optional
        Exit with status 1 when any secret could not be retrieved or written.
    verbose : bool, optional
        Log debug details to stderr.
    """

    _configure_logging(verbose=verbose)
    context = EnvContext.from_os_environ()
    options = OutputOptions(raw=raw, pretty=pretty)

    try:
        _validate_mode(
            secret_ids,
            config=config,
            attachment_name=attachment_name,
            outfile=outfile,
        )
        if filter_expression:
            validate_filter(filter_expression)
        batch = load_batch_config(config) if config is not None else None
        limit = _resolve_concurrency(concurrency, context)
        connection = resolve_connection(
            RawConnectionInputs(
                wsdl=wsdl,
                username=username,
                password=password,
                organization=organization,
                domain=domain,
            ),
            context=context,
            file_values=batch.values if batch is not None else None,
            prompter=_default_prompter(),
        )
    except SecretrError as exc:
        report_error(f"error: {exc}")
        return 1

    try:
        if batch is not None:
            all_ok = run_batch(
                connection,
                batch,
                options=options,
                simple=simple,
                concurrency=limit,
                filter_expression=filter_expression,
            )
        elif attachment_name is not None:
            request = requests_from_args(secret_ids)[0]
            asyncio.run(_download_attachment(connection, request, attachment_name, outfile))
            all_ok = True
        else:
            results = run_direct(
                connection,
                requests_from_args(secret_ids),
                options=options,
                simple=simple,
                concurrency=limit,
                filter_expression=filter_expression,
            )
            all_ok = all(result.ok for result in results)
    except SecretrError as exc:
        report_error(f"Unhandled error retrieving secrets: {exc}")
        return 1

    if fail_on_error and not all_ok:
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
