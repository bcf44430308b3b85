from __future__ import annotations

import asyncio
import logging

from stash_backend.db import session_scope
from stash_backend.integrations.storage.blob_store import BlobStore, get_blob_store
from stash_backend.schemas.items import SweepResult
from stash_backend.services import trash_service


class TrashSweeper:
    """Background task that purges expired trash on a fixed interval."""

    def __init__(
        self,
        *,
        interval_seconds: float,
        retention_days: int,
        blob_store: BlobStore | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.interval_seconds = interval_seconds
        self.retention_days = retention_days
        self._blob_store = blob_store
        self._log = logger or logging.getLogger(__name__)
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> SweepResult:
        blob_store = self._blob_store or get_blob_store()
        async with session_scope() as session:
            return await trash_service.sweep_expired(
                session, blob_store=blob_store, retention_days=self.retention_days
            )

    async def _loop(self) -> None:
        while True:
            try:
                result = await self.run_once()
                self._log.info("trash sweep done deleted_count=%s", result.deleted_count)
            except asyncio.CancelledError:
                raise
            except Exception:
                self._log.exception("trash sweep failed; retrying next interval")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="trash-sweeper")
        self._log.info(
            "trash sweeper started interval_seconds=%s retention_days=%s",
            self.interval_seconds,
            self.retention_days,
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._log.info("trash sweeper stopped")
