"""Batched download of remote documents addressed by identifier lists.

Identifiers are grouped into batches, one URL per batch, and fetched by a
bounded pool of async tasks. Tasks run in rounds of ``max_workers``; when the
errors of consecutive rounds add up past the allowed limit, the remaining
batches are skipped.
"""

import asyncio
from collections.abc import Sequence
from pathlib import Path

import httpx
from pydantic import BaseModel
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..core.models import DownloadSettings
from ..utils.files import delete_temp_file
from ..utils.http import get_client
from ..utils.log import get_logger

log = get_logger(__name__)

IDS_PLACEHOLDER = "{ids}"


class DownloadTask(BaseModel):
    url: str
    destination: Path


class DownloadSummary(BaseModel):
    downloaded: int = 0
    failed: int = 0
    skipped: int = 0
    halted: bool = False


def build_tasks(
    identifiers: Sequence[str],
    url_template: str,
    dest_dir: Path,
    batch_size: int,
    separator: str = ",",
) -> list[DownloadTask]:
    """Split identifiers into batches and build one task per batch.

    Args:
        identifiers: Identifiers to download, in order
        url_template: URL containing ``{ids}``, replaced by the joined batch
        dest_dir: Directory for the batch files (``batch_00001.dat``, ...)
        batch_size: Identifiers per batch
        separator: Joins the identifiers of one batch

    Raises:
        ValueError: If the template has no ``{ids}`` placeholder
    """
    if IDS_PLACEHOLDER not in url_template:
        raise ValueError(f"URL template must contain {IDS_PLACEHOLDER}")
    batch_size = max(batch_size, 1)
    tasks = []
    for number, start in enumerate(range(0, len(identifiers), batch_size), start=1):
        batch = identifiers[start : start + batch_size]
        tasks.append(
            DownloadTask(
                url=url_template.replace(IDS_PLACEHOLDER, separator.join(batch)),
                destination=dest_dir / f"batch_{number:05d}.dat",
            )
        )
    return tasks


async def download_with_retry(task: DownloadTask, client: httpx.AsyncClient, settings: DownloadSettings) -> int:
    """
    Fetch one URL into its destination file.

    Args:
        task: URL and destination file
        client: Shared async client
        settings: Attempt count and delay between attempts

    Returns:
        0 on success, 1 when every attempt failed (the partial file is removed)
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.attempt_count),
            wait=wait_fixed(settings.delay_between_attempts),
            retry=retry_if_exception_type((httpx.HTTPError, OSError)),
            reraise=True,
        ):
            with attempt:
                async with client.stream("GET", task.url) as response:
                    response.raise_for_status()
                    with task.destination.open("wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
    except (httpx.HTTPError, OSError) as e:
        log.error("download_failed", url=task.url, attempts=settings.attempt_count, error=str(e))
        delete_temp_file(task.destination)
        return 1

    log.debug("download_complete", url=task.url, path=str(task.destination))
    return 0


async def run_download_batches(
    identifiers: Sequence[str],
    url_template: str,
    dest_dir: Path,
    settings: DownloadSettings | None = None,
    client: httpx.AsyncClient | None = None,
) -> DownloadSummary:
    """
    Download every identifier batch, halting on too many consecutive errors.

    Args:
        identifiers: Identifiers to download
        url_template: URL template with an ``{ids}`` placeholder
        dest_dir: Directory receiving one file per batch (created if missing)
        settings: Download settings (defaults apply when omitted)
        client: Optional client; one is created and closed here otherwise

    Returns:
        DownloadSummary with downloaded, failed and skipped batch counts
    """
    settings = settings or DownloadSettings()
    tasks = build_tasks(identifiers, url_template, dest_dir, settings.download_batch_size)
    summary = DownloadSummary()
    if not tasks:
        log.info("nothing_to_download")
        return summary

    dest_dir.mkdir(parents=True, exist_ok=True)
    owns_client = client is None
    if client is None:
        client = get_client(settings.connect_timeout, settings.read_timeout, settings.max_workers)

    semaphore = asyncio.Semaphore(settings.max_workers)

    async def bounded(task: DownloadTask) -> int:
        async with semaphore:
            return await download_with_retry(task, client, settings)

    log.info("download_started", batches=len(tasks), identifiers=len(identifiers), workers=settings.max_workers)
    consecutive_errors = 0
    try:
        for start in range(0, len(tasks), settings.max_workers):
            if start:
                await asyncio.sleep(settings.download_delay)
            round_tasks = tasks[start : start + settings.max_workers]
            results = await asyncio.gather(*(bounded(t) for t in round_tasks), return_exceptions=True)
            errors = 0
            for task, result in zip(round_tasks, results):
                if isinstance(result, BaseException):
                    log.error("download_task_failed", url=task.url, error=str(result), error_type=type(result).__name__)
                    delete_temp_file(task.destination)
                    errors += 1
                else:
                    errors += result

            summary.failed += errors
            summary.downloaded += len(round_tasks) - errors
            consecutive_errors = consecutive_errors + errors if errors else 0

            if consecutive_errors > settings.max_allowed_consecutive_errors:
                summary.halted = True
                summary.skipped = len(tasks) - start - len(round_tasks)
                log.error(
                    "download_halted",
                    consecutive_errors=consecutive_errors,
                    limit=settings.max_allowed_consecutive_errors,
                    skipped=summary.skipped,
                )
                break
    finally:
        if owns_client:
            await client.aclose()

    log.info(
        "download_finished",
        downloaded=summary.downloaded,
        failed=summary.failed,
        skipped=summary.skipped,
        halted=summary.halted,
    )
    return summary
