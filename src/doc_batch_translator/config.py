from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    translator_resource_name: str = ""
    translator_key: str = ""
    translator_api_path: str = "translator/text/batch/v1.1"
    languages_url: str = "https://api.cognitive.microsofttranslator.com/languages?api-version=3.0&scope=translation"
    storage_connection_string: str = ""

    category: str | None = None

    container_prefix: str = "doctr"
    transfer_concurrency: int = 100
    sas_ttl_minutes: int = 60

    submit_attempts: int = 3
    submit_backoff_sec: float = 1.0
    poll_interval_sec: float = 1.0
    http_timeout_sec: int = 30

    stale_container_days: int = 10

    @property
    def translator_base_url(self) -> str:
        return f"https://{self.translator_resource_name}.cognitiveservices.azure.com/{self.translator_api_path.strip('/')}"


settings = Settings()
