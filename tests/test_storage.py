import asyncio
from datetime import datetime, timedelta, timezone

from doc_batch_translator.storage import ContainerManager, container_names


def test_container_names_derive_from_run_id() -> None:
    assert container_names("ABC123") == ("doctrabc123src", "doctrabc123tgt", "doctrabc123gls")


def test_provision_creates_containers_idempotently(fake_service) -> None:
    fake_service.containers["doctrrun1src"] = {"old.docx": b"x"}

    async def _go():
        manager = ContainerManager(fake_service)
        pair = manager.provision("run1", with_glossary=True)
        await asyncio.gather(*(h.ready for h in pair.all()))
        return pair

    pair = asyncio.run(_go())
    assert [h.name for h in pair.all()] == ["doctrrun1src", "doctrrun1tgt", "doctrrun1gls"]
    assert set(fake_service.containers) == {"doctrrun1src", "doctrrun1tgt", "doctrrun1gls"}
    assert fake_service.containers["doctrrun1src"] == {"old.docx": b"x"}


def test_glossary_container_only_on_request(fake_service) -> None:
    async def _go():
        pair = ContainerManager(fake_service).provision("run2")
        await asyncio.gather(*(h.ready for h in pair.all()))
        return pair

    assert asyncio.run(_go()).glossary is None
    assert "doctrrun2gls" not in fake_service.containers


def test_delegated_uri_waits_for_creation(fake_service) -> None:
    async def _go():
        manager = ContainerManager(fake_service)
        pair = manager.provision("run3")
        uri = await manager.delegated_uri(pair.source)
        return uri, "doctrrun3src" in fake_service.containers

    uri, existed = asyncio.run(_go())
    assert existed
    assert uri.startswith("https://devstoreaccount1.blob.core.windows.net/doctrrun3src?")
    assert "sig=" in uri
    assert "se=" in uri


def test_teardown_is_best_effort(fake_service) -> None:
    async def _go():
        manager = ContainerManager(fake_service)
        pair = manager.provision("run4")
        await asyncio.gather(*(h.ready for h in pair.all()))
        del fake_service.containers["doctrrun4tgt"]
        return await manager.teardown(pair.all())

    report = asyncio.run(_go())
    assert sorted(report.deleted) == ["doctrrun4src", "doctrrun4tgt"]
    assert report.failed == {}
    assert fake_service.containers == {}


def test_sweep_deletes_only_old_run_containers(fake_service) -> None:
    old = datetime.now(timezone.utc) - timedelta(days=11)
    fresh = datetime.now(timezone.utc) - timedelta(days=1)
    for name, modified in [
        ("doctroldsrc", old),
        ("doctroldtgt", old),
        ("doctroldgls", old),
        ("doctrfreshsrc", fresh),
        ("doctrkeepme", old),
        ("otheroldsrc", old),
    ]:
        fake_service.containers[name] = {}
        fake_service.last_modified[name] = modified

    deleted = asyncio.run(ContainerManager(fake_service).sweep_stale())
    assert sorted(deleted) == ["doctroldgls", "doctroldsrc", "doctroldtgt"]
    assert set(fake_service.containers) == {"doctrfreshsrc", "doctrkeepme", "otheroldsrc"}


def test_sweep_respects_custom_age(fake_service) -> None:
    fake_service.containers["doctrxsrc"] = {}
    fake_service.last_modified["doctrxsrc"] = datetime.now(timezone.utc) - timedelta(hours=2)

    assert asyncio.run(ContainerManager(fake_service).sweep_stale(timedelta(hours=3))) == []
    assert asyncio.run(ContainerManager(fake_service).sweep_stale(timedelta(hours=1))) == ["doctrxsrc"]
