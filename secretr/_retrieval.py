"""Concurrent secret retrieval shared by direct and batch modes.

Both modes feed :class:`~secretr._models.SecretRequest` values into
:func:`fetch_all`, which fetches every secret concurrently and settles each
one into an explicit success or failure value. A failing secret never
cancels its siblings, and results come back in request order only once every
fetch has finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections import abc as cabc
from typing import Any

from secretr._errors import FilterError, OutputWriteError, SecretrError
from secretr._models import (
    STATUS_OK,
    BatchSummary,
    OutputOptions,
    RetrievalResult,
    SecretFailed,
    SecretRequest,
    SecretRetrieved,
)
from secretr._normalise import normalise_secret, simplify_secret
from secretr._output import apply_filter, report_error, serialise, write_secret_file
from secretr._soap_client import SecretClient

logger = logging.getLogger(__name__)


def requests_from_args(secret_ids: cabc.Iterable[str]) -> tuple[SecretRequest, ...]:
    """Build direct-mode requests from positional identifiers.

    Examples
    --------
    >>> [request.secret_id for request in requests_from_args(["101", "api-key"])]
    [101, 'api-key']
    """

    return tuple(SecretRequest.from_token(secret_id) for secret_id in secret_ids)


async def _fetch_one(
    client: SecretClient,
    request: SecretRequest,
    *,
    simple: bool,
    limiter: asyncio.Semaphore | None,
) -> RetrievalResult:
    logger.debug("Fetching secret %s", request.secret_id)
    try:
        if limiter is None:
            raw = await client.fetch_secret(request.secret_id)
        else:
            async with limiter:
                raw = await client.fetch_secret(request.secret_id)
        secret = normalise_secret(raw)
        if simple:
            secret = simplify_secret(secret)
    # Failures are isolated per secret; the message becomes the error record.
    except Exception as exc:  # noqa: BLE001
        message = str(exc) or exc.__class__.__name__
        report_error(f"Error retrieving secret {request.secret_id}: {message}")
        return SecretFailed(request=request, error=message)
    secret["RetrievalStatus"] = STATUS_OK
    logger.debug("Fetched secret %s", request.secret_id)
    return SecretRetrieved(request=request, secret=secret)


async def fetch_all(
    client: SecretClient,
    requests: cabc.Sequence[SecretRequest],
    *,
    simple: bool = False,
    concurrency: int | None = None,
) -> list[RetrievalResult]:
    """Fetch every request concurrently and return results in request order.

    Parameters
    ----------
    client : SecretClient
        Authenticated Secret Server client.
    requests : Sequence[SecretRequest]
        Secrets to retrieve; each is attempted exactly once.
    simple : bool, optional
        Return the simplified projection instead of the full record.
    concurrency : int | None, optional
        Maximum number of in-flight fetches. ``None`` or ``0`` leaves the
        fan-out unbounded.

    Returns
    -------
    list[RetrievalResult]
        One result per request, in the order the requests were given.
    """

    limiter = asyncio.Semaphore(concurrency) if concurrency else None
    async with asyncio.TaskGroup() as group:
        tasks = [
            group.create_task(_fetch_one(client, request, simple=simple, limiter=limiter))
            for request in requests
        ]
    return [task.result() for task in tasks]


def build_envelope(results: cabc.Iterable[RetrievalResult]) -> dict[str, list[dict[str, Any]]]:
    """Wrap every result record in the ``{"Secrets": [...]}`` envelope.

    Examples
    --------
    >>> build_envelope([SecretFailed(SecretRequest(202), "not found")])
    {'Secrets': [{'Id': 202, 'Error': 'not found', 'RetrievalStatus': 'Error'}]}
    """

    return {"Secrets": [result.to_record() for result in results]}


def write_results(
    results: cabc.Iterable[RetrievalResult],
    options: OutputOptions,
    filter_expression: str | None = None,
) -> BatchSummary:
    """Write each retrieved secret to its request's output path.

    Retrieval failures were already reported by :func:`fetch_all`. Filter and
    write failures are reported here, per secret, and never stop the
    remaining writes.
    """

    written = 0
    failed = 0
    for result in results:
        if not isinstance(result, SecretRetrieved):
            logger.warning("Skipping output for secret %s: %s", result.request.secret_id, result.error)
            failed += 1
            continue
        path = result.request.output_path
        if path is None:
            raise SecretrError(f"No output path configured for secret {result.request.secret_id}")
        document = result.secret
        try:
            if filter_expression:
                document = apply_filter(document, filter_expression)
            write_secret_file(path, serialise(document, options))
        except (FilterError, OutputWriteError) as exc:
            report_error(str(exc))
            failed += 1
            continue
        logger.info("Wrote secret %s to %s", result.request.secret_id, path)
        written += 1
    summary = BatchSummary(written=written, failed=failed)
    if not summary.ok:
        logger.warning("Batch finished with %d failure(s); %d secret(s) written", failed, written)
    return summary


__all__ = [
    "build_envelope",
    "fetch_all",
    "requests_from_args",
    "write_results",
]
