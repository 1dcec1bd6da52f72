import logging
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import quote

from doc_batch_translator.discovery import ServiceCapabilities
from doc_batch_translator.files import filter_by_extension, to_records
from doc_batch_translator.schemas import GlossaryRef
from doc_batch_translator.storage import ContainerHandle, ContainerManager
from doc_batch_translator.transfer import TransferResult, upload_files

logger = logging.getLogger(__name__)


async def prepare_glossaries(
    manager: ContainerManager,
    handle: ContainerHandle,
    paths: Sequence[str | Path],
    capabilities: ServiceCapabilities | None = None,
) -> tuple[list[GlossaryRef], TransferResult]:
    """Upload glossary files into their own container and build the target references.

    With ``capabilities`` known, files in a format the service does not list
    are dropped before upload. Files that fail to upload are left out of the
    references.
    """
    if capabilities is not None:
        paths, discarded = filter_by_extension(paths, capabilities.glossary_extensions)
        for name in discarded:
            logger.info("Discarded due to invalid glossary format: %s", name)
    records = to_records(paths)
    await handle.ready
    result = await upload_files(handle.client, records)
    container_uri = await manager.delegated_uri(handle)
    base, _, sas = container_uri.partition("?")
    uploaded = set(result.succeeded)
    refs = [
        GlossaryRef(
            glossary_url=f"{base}/{quote(rec.blob_name)}?{sas}",
            format=capabilities.glossary_format_for(rec.path) if capabilities else None,
        )
        for rec in records
        if rec.blob_name in uploaded
    ]
    logger.info("Glossaries ready: %d of %d", len(refs), len(records))
    return refs, result
