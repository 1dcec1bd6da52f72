import asyncio

from doc_batch_translator.files import to_records
from doc_batch_translator.transfer import bounded_gather, download_container, upload_files


def test_in_flight_operations_never_exceed_the_limit() -> None:
    in_flight = 0
    peak = 0
    done = []

    def make_op(i: int):
        async def op() -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            for _ in range(3):
                await asyncio.sleep(0)
            in_flight -= 1
            done.append(i)
            return i

        return op

    results = asyncio.run(bounded_gather([make_op(i) for i in range(250)], limit=100))
    assert peak == 100
    assert len(done) == 250
    assert results == list(range(250))


def test_failures_are_returned_in_place() -> None:
    async def ok() -> str:
        return "ok"

    async def boom() -> str:
        raise ValueError("boom")

    results = asyncio.run(bounded_gather([ok, boom, ok], limit=2))
    assert results[0] == "ok"
    assert isinstance(results[1], ValueError)
    assert results[2] == "ok"


def test_upload_failure_does_not_abort_siblings(tmp_path, fake_service) -> None:
    paths = []
    for name in ("a.docx", "b.docx", "c.docx"):
        p = tmp_path / name
        p.write_bytes(name.encode())
        paths.append(p)
    fake_service.containers["box"] = {}
    fake_service.fail_uploads.add("b.docx")

    result = asyncio.run(upload_files(fake_service.get_container_client("box"), to_records(paths)))
    assert sorted(result.succeeded) == ["a.docx", "c.docx"]
    assert list(result.failed) == ["b.docx"]
    assert not result.ok
    assert fake_service.containers["box"] == {"a.docx": b"a.docx", "c.docx": b"c.docx"}


def test_download_takes_whatever_the_container_holds(tmp_path, fake_service) -> None:
    fake_service.containers["box"] = {"x.docx": b"x", "y.pdf": b"y"}
    out = tmp_path / "docs.de"

    result = asyncio.run(download_container(fake_service.get_container_client("box"), out))
    assert sorted(result.succeeded) == ["x.docx", "y.pdf"]
    assert (out / "x.docx").read_bytes() == b"x"
    assert (out / "y.pdf").read_bytes() == b"y"
