import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import ContainerSasPermissions, generate_container_sas
from azure.storage.blob.aio import BlobServiceClient, ContainerClient

from doc_batch_translator.config import settings

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = "src"
TARGET_SUFFIX = "tgt"
GLOSSARY_SUFFIX = "gls"
RUN_SUFFIXES = (SOURCE_SUFFIX, TARGET_SUFFIX, GLOSSARY_SUFFIX)

# read, add, create, write, delete, list
FULL_PERMISSIONS = "racwdl"


@dataclass
class ContainerHandle:
    name: str
    client: ContainerClient
    ready: asyncio.Task = field(repr=False)


@dataclass
class ContainerPair:
    source: ContainerHandle
    target: ContainerHandle
    glossary: ContainerHandle | None = None

    def all(self) -> list[ContainerHandle]:
        handles = [self.source, self.target]
        if self.glossary is not None:
            handles.append(self.glossary)
        return handles


@dataclass
class TeardownReport:
    deleted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def container_names(run_id: str, prefix: str | None = None) -> tuple[str, str, str]:
    base = f"{prefix or settings.container_prefix}{run_id}".lower()
    return base + SOURCE_SUFFIX, base + TARGET_SUFFIX, base + GLOSSARY_SUFFIX


class ContainerManager:
    """Creates, grants access to and deletes the ephemeral containers of a run."""

    def __init__(self, service: BlobServiceClient) -> None:
        self.service = service

    async def _create(self, client: ContainerClient) -> None:
        try:
            await client.create_container()
        except ResourceExistsError:
            logger.debug("Container %s already exists", client.container_name)

    def _handle(self, name: str) -> ContainerHandle:
        client = self.service.get_container_client(name)
        return ContainerHandle(name=name, client=client, ready=asyncio.create_task(self._create(client)))

    def provision(self, run_id: str, with_glossary: bool = False) -> ContainerPair:
        """Start creating the run's containers and return their handles at once.

        Creation runs in the background; await ``handle.ready`` (or let
        :meth:`delegated_uri` do it) before using a container.
        """
        src, tgt, gls = container_names(run_id)
        pair = ContainerPair(source=self._handle(src), target=self._handle(tgt))
        if with_glossary:
            pair.glossary = self._handle(gls)
        logger.info("Provisioning containers %s", [h.name for h in pair.all()])
        return pair

    async def delegated_uri(
        self,
        handle: ContainerHandle,
        permissions: str = FULL_PERMISSIONS,
        ttl: timedelta | None = None,
    ) -> str:
        await handle.ready
        ttl = ttl or timedelta(minutes=settings.sas_ttl_minutes)
        sas = generate_container_sas(
            account_name=self.service.account_name,
            container_name=handle.name,
            account_key=self.service.credential.account_key,
            permission=ContainerSasPermissions.from_string(permissions),
            expiry=datetime.now(timezone.utc) + ttl,
        )
        return f"{handle.client.url}?{sas}"

    async def _delete(self, handle: ContainerHandle) -> None:
        if not handle.ready.done():
            handle.ready.cancel()
        await asyncio.wait([handle.ready])
        if not handle.ready.cancelled() and handle.ready.exception() is not None:
            logger.debug("Container %s was never created: %s", handle.name, handle.ready.exception())
        try:
            await handle.client.delete_container()
        except ResourceNotFoundError:
            logger.debug("Container %s already gone", handle.name)

    async def teardown(self, handles: list[ContainerHandle]) -> TeardownReport:
        """Delete containers concurrently. Never raises; failures are logged and reported."""
        report = TeardownReport()
        results = await asyncio.gather(*(self._delete(h) for h in handles), return_exceptions=True)
        for handle, result in zip(handles, results):
            if isinstance(result, BaseException):
                logger.warning("Deleting container %s failed: %s", handle.name, result)
                report.failed[handle.name] = str(result)
            else:
                report.deleted.append(handle.name)
        logger.info("Containers deleted: %s", report.deleted)
        return report

    async def sweep_stale(self, max_age: timedelta | None = None) -> list[str]:
        """Delete run containers last modified more than ``max_age`` ago."""
        max_age = max_age or timedelta(days=settings.stale_container_days)
        cutoff = datetime.now(timezone.utc) - max_age
        stale: list[str] = []
        async for item in self.service.list_containers(name_starts_with=settings.container_prefix):
            if not item.name.endswith(RUN_SUFFIXES):
                continue
            if item.last_modified is not None and item.last_modified < cutoff:
                stale.append(item.name)

        async def _drop(name: str) -> None:
            await self.service.get_container_client(name).delete_container()

        results = await asyncio.gather(*(_drop(n) for n in stale), return_exceptions=True)
        deleted = []
        for name, result in zip(stale, results):
            if isinstance(result, BaseException):
                logger.warning("Deleting stale container %s failed: %s", name, result)
            else:
                deleted.append(name)
        logger.info("Stale containers deleted: %d of %d", len(deleted), len(stale))
        return deleted
