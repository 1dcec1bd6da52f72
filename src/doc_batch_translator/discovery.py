import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from doc_batch_translator.config import settings
from doc_batch_translator.schemas import FileFormat, FileFormatList, Language
from doc_batch_translator.translator import StatusQueryError, TranslatorClient

logger = logging.getLogger(__name__)


@dataclass
class ServiceCapabilities:
    document_formats: list[FileFormat] = field(default_factory=list)
    glossary_formats: list[FileFormat] = field(default_factory=list)
    languages: dict[str, Language] = field(default_factory=dict)

    @property
    def extensions(self) -> set[str]:
        return {ext.lower() for f in self.document_formats for ext in f.file_extensions}

    @property
    def glossary_extensions(self) -> set[str]:
        return {ext.lower() for f in self.glossary_formats for ext in f.file_extensions}

    def glossary_format_for(self, path: str | Path) -> str | None:
        suffix = Path(path).suffix.lower()
        for fmt in self.glossary_formats:
            if suffix in {ext.lower() for ext in fmt.file_extensions}:
                return fmt.format
        return None


async def _formats(client: TranslatorClient, kind: str) -> list[FileFormat]:
    r = await client.get(f"{client.base_url}/{kind}/formats")
    if not r.is_success:
        raise StatusQueryError(f"{kind}_formats_http_{r.status_code}")
    return FileFormatList.model_validate(r.json()).value


async def _languages(client: TranslatorClient) -> dict[str, Language]:
    r = await client.get(settings.languages_url)
    if not r.is_success:
        raise StatusQueryError(f"languages_http_{r.status_code}")
    found = r.json().get("translation", {})
    return {code: Language.model_validate(entry) for code, entry in found.items()}


async def discover(client: TranslatorClient) -> ServiceCapabilities:
    """Fetch document formats, glossary formats and languages together.

    Returns once all three are in; the first failure propagates.
    """
    docs, glossaries, languages = await asyncio.gather(
        _formats(client, "documents"),
        _formats(client, "glossaries"),
        _languages(client),
    )
    caps = ServiceCapabilities(document_formats=docs, glossary_formats=glossaries, languages=languages)
    logger.info(
        "Service initialized: %d document formats, %d glossary formats, %d languages",
        len(docs),
        len(glossaries),
        len(languages),
    )
    return caps
