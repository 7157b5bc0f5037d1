from __future__ import annotations

import asyncio
from pathlib import Path, PurePosixPath

from ..core.exceptions import DataSourceError


class LocalBucketStorage:
    """Bucket uploads written below a root directory and served from `base_url`."""

    def __init__(self, root: str | Path, base_url: str):
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")

    def _target(self, bucket: str, path: str) -> Path:
        relative = PurePosixPath(bucket) / PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise DataSourceError(f"invalid upload path: {bucket}/{path}")
        return self._root.joinpath(*relative.parts)

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        target = self._target(bucket, path)
        try:
            await asyncio.to_thread(self._write, target, bytes(data))
        except OSError as exc:
            raise DataSourceError(f"upload to {bucket}/{path} failed: {exc}") from exc
        return f"{self._base_url}/{bucket}/{path.lstrip('/')}"
