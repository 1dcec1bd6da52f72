from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError

from doc_batch_translator import config
from doc_batch_translator.translator import TranslatorClient

# well-known development storage key; any valid base64 works for SAS signing
DEV_ACCOUNT_KEY = "Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw=="
BASE_URL = "https://test.cognitiveservices.azure.com/translator/text/batch/v1.1"


class FakeDownload:
    def __init__(self, data: bytes) -> None:
        self._data = data

    async def readall(self) -> bytes:
        return self._data


class FakeContainer:
    def __init__(self, service: "FakeBlobService", name: str) -> None:
        self.service = service
        self.container_name = name
        self.url = f"https://{service.account_name}.blob.core.windows.net/{name}"

    def _blobs(self) -> dict[str, bytes]:
        if self.container_name not in self.service.containers:
            raise ResourceNotFoundError(f"container {self.container_name} not found")
        return self.service.containers[self.container_name]

    async def create_container(self) -> None:
        if self.container_name in self.service.fail_create:
            raise RuntimeError("create refused")
        if self.container_name in self.service.containers:
            raise ResourceExistsError("container exists")
        self.service.containers[self.container_name] = {}
        self.service.last_modified[self.container_name] = datetime.now(timezone.utc)

    async def delete_container(self) -> None:
        self._blobs()
        del self.service.containers[self.container_name]
        self.service.deleted.append(self.container_name)

    async def upload_blob(self, name: str, data, overwrite: bool = False) -> None:
        blobs = self._blobs()
        if name in self.service.fail_uploads:
            raise RuntimeError(f"upload of {name} refused")
        if name in blobs and not overwrite:
            raise ResourceExistsError(f"blob {name} exists")
        blobs[name] = data if isinstance(data, bytes) else data.read()

    async def list_blobs(self):
        for name in list(self._blobs()):
            yield SimpleNamespace(name=name)

    async def download_blob(self, name: str) -> FakeDownload:
        return FakeDownload(self._blobs()[name])


class FakeBlobService:
    """In-memory stand-in for the parts of ``azure.storage.blob.aio.BlobServiceClient`` we use."""

    def __init__(self) -> None:
        self.account_name = "devstoreaccount1"
        self.credential = SimpleNamespace(account_name=self.account_name, account_key=DEV_ACCOUNT_KEY)
        self.containers: dict[str, dict[str, bytes]] = {}
        self.last_modified: dict[str, datetime] = {}
        self.deleted: list[str] = []
        self.fail_uploads: set[str] = set()
        self.fail_create: set[str] = set()
        self.closed = False

    def get_container_client(self, name: str) -> FakeContainer:
        return FakeContainer(self, name)

    async def list_containers(self, name_starts_with: str | None = None):
        for name in list(self.containers):
            if name_starts_with and not name.startswith(name_starts_with):
                continue
            yield SimpleNamespace(name=name, last_modified=self.last_modified.get(name))

    async def close(self) -> None:
        self.closed = True

    def container_ending(self, suffix: str) -> str:
        return next(name for name in self.containers if name.endswith(suffix))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    monkeypatch.setattr(config.settings, "translator_resource_name", "test")
    monkeypatch.setattr(config.settings, "translator_key", "test-key")
    monkeypatch.setattr(config.settings, "storage_connection_string", "UseDevelopmentStorage=true")
    monkeypatch.setattr(config.settings, "category", None)
    monkeypatch.setattr(config.settings, "container_prefix", "doctr")
    monkeypatch.setattr(config.settings, "transfer_concurrency", 100)
    monkeypatch.setattr(config.settings, "submit_attempts", 3)
    monkeypatch.setattr(config.settings, "submit_backoff_sec", 0)
    monkeypatch.setattr(config.settings, "poll_interval_sec", 0)
    monkeypatch.setattr(config.settings, "stale_container_days", 10)
    yield


@pytest.fixture
def fake_service() -> FakeBlobService:
    return FakeBlobService()


@pytest.fixture
def make_client():
    def _make(handler) -> TranslatorClient:
        return TranslatorClient(base_url=BASE_URL, api_key="test-key", transport=httpx.MockTransport(handler))

    return _make
