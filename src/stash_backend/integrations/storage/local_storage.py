from __future__ import annotations

from pathlib import Path, PurePosixPath

from starlette.concurrency import run_in_threadpool


def _safe_join(root: Path, key: str) -> Path:
    parts = [p for p in PurePosixPath(key).parts if p not in {"/", ""}]
    if not parts or any(p in {"..", "."} for p in parts):
        raise ValueError(f"invalid storage key: {key!r}")
    return root.joinpath(*parts)


class LocalObjectStorage:
    """Directory-backed storage for development and tests; keys map to relative paths."""

    def __init__(self, *, root_dir: str) -> None:
        self._root = Path(root_dir)

    def resolve_path(self, key: str) -> Path:
        return _safe_join(self._root, key)

    async def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        _ = content_type
        path = self.resolve_path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".tmp")
            _ = tmp_path.write_bytes(data)
            _ = tmp_path.replace(path)

        await run_in_threadpool(_write)

    async def get_bytes(self, key: str) -> bytes:
        return await run_in_threadpool(self.resolve_path(key).read_bytes)

    async def delete(self, key: str) -> None:
        path = self.resolve_path(key)
        # Deleting a missing object succeeds, matching S3 semantics.
        await run_in_threadpool(path.unlink, missing_ok=True)

    async def exists(self, key: str) -> bool:
        return await run_in_threadpool(self.resolve_path(key).is_file)
