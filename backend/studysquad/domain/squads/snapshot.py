"""Snapshot/restore gateway between the repository and a durable store."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from studysquad.domain.squads import schemas
from studysquad.domain.squads.repository import SquadRepository
from studysquad.infra.snapshot_store import SnapshotStore, SnapshotStoreError
from studysquad.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class SnapshotError(RuntimeError):
	"""A snapshot could not be produced, parsed or persisted."""


class SnapshotGateway:
	def __init__(self, repository: SquadRepository, store: Optional[SnapshotStore] = None, *, autosave: bool = True) -> None:
		self._repo = repository
		self._store = store
		self._write_lock = asyncio.Lock()
		if store is not None and autosave:
			repository.attach(self)

	async def snapshot(self) -> str:
		"""Serialise every squad, newest first, as a JSON document."""
		squads = await self._repo.list()
		document = schemas.SnapshotDocument(
			squads=[schemas.SquadDocument.from_domain(squad) for squad in squads],
		)
		return document.model_dump_json(by_alias=True)

	async def restore(self, document: str | bytes) -> int:
		"""Replace the repository contents with ``document``.

		The whole document is validated before anything is swapped in, so a bad
		snapshot leaves the repository exactly as it was.
		"""
		try:
			parsed = schemas.SnapshotDocument.model_validate_json(document)
		except ValidationError as exc:
			obs_metrics.inc_snapshot("restore", "invalid")
			raise SnapshotError("snapshot_invalid") from exc
		squads = [squad.to_domain() for squad in parsed.squads]
		count = await self._repo.replace_all(squads)
		obs_metrics.inc_snapshot("restore", "ok")
		logger.info("snapshot restored", extra={"squads": count})
		return count

	async def save(self) -> None:
		if self._store is None:
			return
		# Serialise and write under one lock so an older document never lands last.
		async with self._write_lock:
			document = await self.snapshot()
			try:
				await self._store.write(document)
			except SnapshotStoreError as exc:
				obs_metrics.inc_snapshot("save", "error")
				raise SnapshotError("snapshot_save_failed") from exc
		obs_metrics.inc_snapshot("save", "ok")

	async def load(self) -> bool:
		"""Restore from the store; False when the store is empty or absent."""
		if self._store is None:
			return False
		try:
			document = await self._store.read()
		except SnapshotStoreError as exc:
			obs_metrics.inc_snapshot("load", "error")
			raise SnapshotError("snapshot_load_failed") from exc
		if not document:
			return False
		await self.restore(document)
		return True
