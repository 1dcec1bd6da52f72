from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class InnerError(_Wire):
    code: str | None = None
    message: str | None = None


class ErrorDetail(_Wire):
    code: str | None = None
    message: str | None = None
    target: str | None = None
    inner_error: InnerError | None = None

    def __str__(self) -> str:
        text = f"{self.code}: {self.message}"
        if self.inner_error and self.inner_error.code:
            text += f" ({self.inner_error.code}: {self.inner_error.message})"
        return text


class Summary(_Wire):
    total: int = 0
    failed: int = 0
    success: int = 0
    in_progress: int = 0
    not_yet_started: int = 0
    cancelled: int = 0
    total_character_charged: int = 0


class JobStatus(_Wire):
    id: str | None = None
    created_date_time_utc: str | None = None
    last_action_date_time_utc: str | None = None
    status: str
    error: ErrorDetail | None = None
    summary: Summary = Field(default_factory=Summary)


class GlossaryRef(_Wire):
    glossary_url: str
    format: str | None = None
    storage_source: str = "folder"


class TranslationSource(_Wire):
    source_url: str = Field(alias="SourceUrl")


class TranslationTarget(_Wire):
    language: str
    target_url: str
    category: str | None = None
    glossaries: list[GlossaryRef] | None = None


class TranslationInput(_Wire):
    storage_type: str = "folder"
    source: TranslationSource
    targets: list[TranslationTarget]


class SubmissionRequest(_Wire):
    inputs: list[TranslationInput]

    @classmethod
    def single(
        cls,
        source_url: str,
        language: str,
        target_url: str,
        category: str | None = None,
        glossaries: list[GlossaryRef] | None = None,
    ) -> "SubmissionRequest":
        target = TranslationTarget(
            language=language,
            target_url=target_url,
            category=category,
            glossaries=glossaries or None,
        )
        source = TranslationSource(SourceUrl=source_url)
        return cls(inputs=[TranslationInput(source=source, targets=[target])])


class FileFormat(_Wire):
    format: str
    file_extensions: list[str] = Field(default_factory=list)
    content_types: list[str] = Field(default_factory=list)
    versions: list[str] = Field(default_factory=list)
    default_version: str | None = None


class FileFormatList(_Wire):
    value: list[FileFormat] = Field(default_factory=list)


class Language(_Wire):
    name: str
    native_name: str | None = None
    dir: str | None = None
