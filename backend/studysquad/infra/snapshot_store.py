"""Durable homes for repository snapshots.

Stores only move opaque text around; validation and the atomic swap into the
repository live in the snapshot gateway.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Optional, Protocol

from studysquad.infra.redis import redis_client
from studysquad.settings import settings

logger = logging.getLogger(__name__)


class SnapshotStoreError(RuntimeError):
	"""Raised when the persistence medium cannot be read or written."""


class SnapshotStore(Protocol):
	async def write(self, document: str) -> None:
		...

	async def read(self) -> Optional[str]:
		...


class MemorySnapshotStore:
	def __init__(self, document: Optional[str] = None) -> None:
		self.document = document
		self.writes = 0

	async def write(self, document: str) -> None:
		self.document = document
		self.writes += 1

	async def read(self) -> Optional[str]:
		return self.document


class FileSnapshotStore:
	"""Snapshot file replaced atomically, so a crash never leaves half a document."""

	def __init__(self, path: str | os.PathLike[str]) -> None:
		self.path = Path(path)

	async def write(self, document: str) -> None:
		try:
			await asyncio.to_thread(self._write_sync, document)
		except OSError as exc:
			raise SnapshotStoreError(f"snapshot_write_failed:{self.path}") from exc

	async def read(self) -> Optional[str]:
		try:
			return await asyncio.to_thread(self._read_sync)
		except OSError as exc:
			raise SnapshotStoreError(f"snapshot_read_failed:{self.path}") from exc

	def _write_sync(self, document: str) -> None:
		self.path.parent.mkdir(parents=True, exist_ok=True)
		fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
		try:
			with os.fdopen(fd, "w", encoding="utf-8") as handle:
				handle.write(document)
				handle.flush()
				os.fsync(handle.fileno())
			os.replace(tmp_name, self.path)
		except BaseException:
			with suppress(FileNotFoundError):
				os.unlink(tmp_name)
			raise

	def _read_sync(self) -> Optional[str]:
		if not self.path.exists():
			return None
		return self.path.read_text(encoding="utf-8")


class RedisSnapshotStore:
	"""Keeps the latest snapshot under a single Redis key."""

	def __init__(self, key: Optional[str] = None, client=redis_client) -> None:
		self.key = key or settings.snapshot_redis_key
		self._client = client

	async def write(self, document: str) -> None:
		try:
			await self._client.set(self.key, document)
		except Exception as exc:
			raise SnapshotStoreError(f"snapshot_write_failed:{self.key}") from exc

	async def read(self) -> Optional[str]:
		try:
			value = await self._client.get(self.key)
		except Exception as exc:
			raise SnapshotStoreError(f"snapshot_read_failed:{self.key}") from exc
		if not value:
			return None
		return value


def build_store(backend: Optional[str] = None) -> Optional[SnapshotStore]:
	"""Return the store configured by ``settings.snapshot_backend`` (None disables persistence)."""
	name = backend or settings.snapshot_backend
	if name in ("", "none"):
		return None
	if name == "file":
		return FileSnapshotStore(settings.snapshot_path)
	if name == "redis":
		return RedisSnapshotStore()
	logger.warning("unknown snapshot backend %s; persistence disabled", name)
	return None
