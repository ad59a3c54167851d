"""Request-scoped temporary storage for uploaded files."""

from __future__ import annotations

import logging
import os
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


def _write_upload(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _remove_upload(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


@asynccontextmanager
async def scoped_upload(filename: str, data: bytes, upload_dir: Path) -> AsyncIterator[Path]:
    """Write ``data`` to a uniquely named file and delete it on exit.

    The temp name is a fresh UUID plus the original suffix, so concurrent
    requests uploading the same filename never collide.
    """
    ext = os.path.splitext(filename or "")[1]
    path = Path(upload_dir) / f"{uuid.uuid4().hex}{ext}"
    try:
        await run_in_threadpool(_write_upload, path, data)
        logger.debug("Upload stored | filename=%s | path=%s | bytes=%d", filename, path, len(data))
        yield path
    finally:
        await run_in_threadpool(_remove_upload, path)
        logger.debug("Upload removed | path=%s", path)
