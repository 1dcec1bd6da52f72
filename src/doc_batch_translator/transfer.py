import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from azure.storage.blob.aio import ContainerClient

from doc_batch_translator.config import settings
from doc_batch_translator.files import FileRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TransferResult:
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


async def bounded_gather(
    operations: Sequence[Callable[[], Awaitable[T]]],
    limit: int,
) -> list[T | BaseException]:
    """Run every operation with at most ``limit`` of them in flight.

    A slot is held until its operation finishes. Results come back in input
    order; an operation that raised yields its exception instead of a value.
    """
    semaphore = asyncio.Semaphore(limit)

    async def _run(op: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await op()

    return await asyncio.gather(*(_run(op) for op in operations), return_exceptions=True)


def _collect(names: list[str], results: list, verb: str) -> TransferResult:
    result = TransferResult()
    for name, outcome in zip(names, results):
        if isinstance(outcome, BaseException):
            logger.warning("%s of %s failed: %s", verb, name, outcome)
            result.failed[name] = str(outcome)
        else:
            result.succeeded.append(name)
    logger.info("%s complete. %d ok, %d failed.", verb, len(result.succeeded), len(result.failed))
    return result


async def upload_files(
    container: ContainerClient,
    records: Sequence[FileRecord],
    limit: int | None = None,
) -> TransferResult:
    def _upload(rec: FileRecord) -> Callable[[], Awaitable[None]]:
        async def op() -> None:
            with rec.path.open("rb") as fh:
                await container.upload_blob(name=rec.blob_name, data=fh, overwrite=True)
            logger.debug("Uploaded %s as %s", rec.path, rec.blob_name)

        return op

    results = await bounded_gather([_upload(r) for r in records], limit or settings.transfer_concurrency)
    return _collect([r.blob_name for r in records], results, "Upload")


async def download_container(
    container: ContainerClient,
    output_dir: Path,
    limit: int | None = None,
) -> TransferResult:
    """Download every blob currently in ``container`` into ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    names = [blob.name async for blob in container.list_blobs()]

    def _download(name: str) -> Callable[[], Awaitable[None]]:
        async def op() -> None:
            stream = await container.download_blob(name)
            data = await stream.readall()
            (output_dir / Path(name).name).write_bytes(data)
            logger.debug("Downloaded %s", name)

        return op

    results = await bounded_gather([_download(n) for n in names], limit or settings.transfer_concurrency)
    return _collect(names, results, "Download")
