from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path


class NameCollisionError(ValueError):
    def __init__(self, collisions: dict[str, list[str]]) -> None:
        self.collisions = collisions
        names = ", ".join(sorted(collisions))
        super().__init__(f"input files flatten to the same blob name: {names}")


@dataclass(frozen=True)
class FileRecord:
    path: Path
    blob_name: str

    @classmethod
    def from_path(cls, path: str | Path) -> "FileRecord":
        path = Path(path)
        return cls(path=path, blob_name=normalize(path))


def normalize(path: str | Path) -> str:
    """Storage object name for a local file: the basename, directories are flattened."""
    return Path(path).name


def filter_by_extension(
    paths: Sequence[str | Path] | None,
    extensions: Iterable[str],
) -> tuple[list[str | Path], list[str | Path]]:
    """Split ``paths`` into (accepted, discarded) by file extension.

    Matching is case-insensitive and ``extensions`` carry the leading dot
    (``".docx"``). Input order is kept inside each list. ``None`` gives two
    empty lists.
    """
    if not paths:
        return [], []
    allowed = {ext.lower() for ext in extensions}
    accepted: list[str | Path] = []
    discarded: list[str | Path] = []
    for path in paths:
        if Path(path).suffix.lower() in allowed:
            accepted.append(path)
        else:
            discarded.append(path)
    return accepted, discarded


def expand_inputs(paths: Sequence[str | Path]) -> list[Path]:
    # a single directory means "every file directly inside it"
    if len(paths) == 1 and Path(paths[0]).is_dir():
        return sorted(p for p in Path(paths[0]).iterdir() if p.is_file())
    return [Path(p) for p in paths]


def to_records(paths: Iterable[str | Path]) -> list[FileRecord]:
    records = [FileRecord.from_path(p) for p in paths]
    seen: dict[str, list[str]] = {}
    for rec in records:
        seen.setdefault(rec.blob_name, []).append(str(rec.path))
    collisions = {name: found for name, found in seen.items() if len(found) > 1}
    if collisions:
        raise NameCollisionError(collisions)
    return records
