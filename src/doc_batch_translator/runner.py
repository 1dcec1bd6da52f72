import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx
from azure.storage.blob.aio import BlobServiceClient

from doc_batch_translator.config import settings
from doc_batch_translator.discovery import ServiceCapabilities, discover
from doc_batch_translator.files import FileRecord, NameCollisionError, expand_inputs, filter_by_extension, to_records
from doc_batch_translator.glossary import prepare_glossaries
from doc_batch_translator.poller import JobState, PollCancelled, job_state, poll_until_terminal
from doc_batch_translator.schemas import ErrorDetail, GlossaryRef, JobStatus, SubmissionRequest
from doc_batch_translator.storage import ContainerManager, ContainerPair, TeardownReport
from doc_batch_translator.transfer import TransferResult, download_container, upload_files
from doc_batch_translator.translator import (
    SubmissionError,
    TranslatorClient,
    TranslatorError,
    require_credentials,
)

logger = logging.getLogger(__name__)


@dataclass
class TranslationJob:
    files: Sequence[str | Path]
    target_language: str
    output_dir: Path | None = None
    glossary_files: Sequence[str | Path] = ()
    category: str | None = None
    run_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass
class RunResult:
    run_id: str
    target_language: str
    accepted: list[Path] = field(default_factory=list)
    discarded: list[Path] = field(default_factory=list)
    output_dir: Path | None = None
    job_url: str | None = None
    status: JobStatus | None = None
    upload: TransferResult | None = None
    glossary: TransferResult | None = None
    download: TransferResult | None = None
    teardown: TeardownReport | None = None


@dataclass
class RunEvent:
    kind: str  # "status" | "download_complete" | "run_complete"
    payload: Any


class RunError(TranslatorError):
    def __init__(
        self,
        phase: str,
        message: str,
        detail: ErrorDetail | None = None,
        result: RunResult | None = None,
    ) -> None:
        self.phase = phase
        self.detail = detail
        self.result = result
        super().__init__(f"{phase}: {message}")


class RunCancelled(RunError):
    pass


@dataclass
class RunContext:
    job: TranslationJob
    records: list[FileRecord]
    pair: ContainerPair
    result: RunResult
    events: asyncio.Queue | None
    cancel: asyncio.Event


def default_output_dir(first_file: Path, language: str) -> Path:
    return Path(f"{first_file.resolve().parent}.{language}")


class BatchRunner:
    """Runs batch translations: upload, submit, wait, download, clean up.

    Holds only shared collaborators; everything about a single run lives in
    a :class:`RunContext` created by :meth:`run`.
    """

    def __init__(
        self,
        client: TranslatorClient,
        containers: ContainerManager,
        capabilities: ServiceCapabilities | None = None,
        extensions: Iterable[str] | None = None,
    ) -> None:
        self.client = client
        self.containers = containers
        self.capabilities = capabilities
        if extensions is None:
            extensions = capabilities.extensions if capabilities else ()
        self.extensions = {ext.lower() for ext in extensions}

    async def run(
        self,
        job: TranslationJob,
        events: asyncio.Queue | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RunResult:
        result = RunResult(run_id=job.run_id, target_language=job.target_language)
        accepted, discarded = filter_by_extension(expand_inputs(job.files), self.extensions)
        result.accepted = [Path(p) for p in accepted]
        result.discarded = [Path(p) for p in discarded]
        for name in result.discarded:
            logger.info("Discarded due to invalid file format for translation: %s", name)
        if not accepted:
            raise RunError("filter", "no translatable files", result=result)
        try:
            records = to_records(accepted)
        except NameCollisionError as exc:
            raise RunError("filter", str(exc), result=result) from exc
        result.output_dir = job.output_dir or default_output_dir(result.accepted[0], job.target_language)

        pair = self.containers.provision(job.run_id, with_glossary=bool(job.glossary_files))
        ctx = RunContext(
            job=job,
            records=records,
            pair=pair,
            result=result,
            events=events,
            cancel=cancel or asyncio.Event(),
        )
        try:
            await self._execute(ctx)
        except RunError as exc:
            exc.result = result
            logger.error("Run %s failed in %s: %s", job.run_id, exc.phase, exc)
            raise
        finally:
            result.teardown = await self.containers.teardown(pair.all())

        await self._emit(ctx, RunEvent("run_complete", result))
        logger.info("Run %s complete", job.run_id)
        return result

    async def _emit(self, ctx: RunContext, event: RunEvent) -> None:
        if ctx.events is not None:
            await ctx.events.put(event)

    def _check_cancel(self, ctx: RunContext, phase: str) -> None:
        if ctx.cancel.is_set():
            raise RunCancelled(phase, "run cancelled by caller")

    async def _stage_inputs(self, ctx: RunContext) -> list[GlossaryRef]:
        pair = ctx.pair
        for handle in (pair.source, pair.glossary):
            if handle is None:
                continue
            try:
                await handle.ready
            except Exception as exc:
                raise RunError("provision", f"creating {handle.name} failed: {exc}") from exc
        logger.info("Input containers created")

        jobs = [upload_files(pair.source.client, ctx.records)]
        if pair.glossary is not None:
            jobs.append(
                prepare_glossaries(self.containers, pair.glossary, ctx.job.glossary_files, self.capabilities)
            )
        outcomes = await asyncio.gather(*jobs, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise RunError("upload", str(outcome)) from outcome

        ctx.result.upload = outcomes[0]
        refs: list[GlossaryRef] = []
        if len(outcomes) > 1:
            refs, ctx.result.glossary = outcomes[1]
        if not ctx.result.upload.succeeded:
            raise RunError("upload", "no document was uploaded")
        return refs

    async def _submit(self, ctx: RunContext, glossaries: list[GlossaryRef]) -> str:
        try:
            source_uri = await self.containers.delegated_uri(ctx.pair.source)
            target_uri = await self.containers.delegated_uri(ctx.pair.target)
        except Exception as exc:
            raise RunError("provision", f"container access failed: {exc}") from exc

        request = SubmissionRequest.single(
            source_url=source_uri,
            language=ctx.job.target_language,
            target_url=target_uri,
            category=ctx.job.category or settings.category,
            glossaries=glossaries,
        )
        try:
            job_url = await self.client.submit(request)
        except SubmissionError as exc:
            raise RunError("submit", str(exc), detail=exc.detail) from exc
        if job_url is None:
            raise RunError("submit", f"no job handle after {settings.submit_attempts} attempts")
        logger.info("Processing-Location: %s", job_url)
        return job_url

    async def _cancel_remote(self, job_url: str) -> JobStatus | None:
        try:
            return await self.client.cancel(job_url)
        except (TranslatorError, httpx.HTTPError) as exc:
            logger.warning("Cancelling job %s failed: %s", job_url, exc)
            return None

    async def _wait(self, ctx: RunContext, job_url: str) -> JobStatus:
        async def _on_change(status: JobStatus) -> None:
            await self._emit(ctx, RunEvent("status", status))

        try:
            return await poll_until_terminal(
                lambda: self.client.get_status(job_url),
                on_change=_on_change,
                cancel=ctx.cancel,
            )
        except PollCancelled as exc:
            ctx.result.status = await self._cancel_remote(job_url) or exc.last
            raise RunCancelled("poll", "run cancelled by caller") from exc
        except (TranslatorError, httpx.HTTPError) as exc:
            raise RunError("poll", str(exc)) from exc

    async def _execute(self, ctx: RunContext) -> None:
        glossaries = await self._stage_inputs(ctx)
        self._check_cancel(ctx, "upload")

        ctx.result.job_url = await self._submit(ctx, glossaries)
        status = await self._wait(ctx, ctx.result.job_url)
        ctx.result.status = status

        state = job_state(status)
        if state in (JobState.FAILED, JobState.CANCELLED) and status.summary.success == 0:
            raise RunError("translate", f"job ended {status.status}", detail=status.error)

        try:
            ctx.result.download = await download_container(ctx.pair.target.client, ctx.result.output_dir)
        except Exception as exc:
            raise RunError("download", str(exc)) from exc
        await self._emit(ctx, RunEvent("download_complete", ctx.result))


@asynccontextmanager
async def open_runner(transport: httpx.AsyncBaseTransport | None = None) -> AsyncIterator[BatchRunner]:
    """Build a runner from settings, discovering supported formats first."""
    require_credentials()
    service = BlobServiceClient.from_connection_string(settings.storage_connection_string)
    client = TranslatorClient(transport=transport)
    try:
        capabilities = await discover(client)
        yield BatchRunner(client, ContainerManager(service), capabilities)
    finally:
        await client.aclose()
        await service.close()
