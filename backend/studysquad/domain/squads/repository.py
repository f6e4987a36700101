"""In-memory squad repository, the source of truth for squad aggregates."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator, Callable, Dict, Iterable, List, Optional

import ulid

from studysquad.domain.squads import models, policy
from studysquad.infra.identity import CurrentUser
from studysquad.obs import metrics as obs_metrics
from studysquad.settings import settings

if TYPE_CHECKING:
	from studysquad.domain.squads.snapshot import SnapshotGateway

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
	return datetime.now(timezone.utc)


class SquadRepository:
	"""Ordered collection of squads.

	The collection lock guards insert/delete/lookup so readers always see a
	consistent set of squads. Per-squad locks serialise read-modify-write on one
	aggregate without blocking other squads. Aggregates are immutable, so a
	returned squad is a stable version that later writes never alter.
	"""

	def __init__(
		self,
		*,
		clock: Callable[[], datetime] = utc_now,
		code_generator: Callable[[], str] = policy.generate_join_code,
	) -> None:
		self._lock = asyncio.Lock()
		# Insertion order is creation order; list() reverses it.
		self._squads: Dict[str, models.StudySquad] = {}
		self._squad_locks: Dict[str, asyncio.Lock] = {}
		self._clock = clock
		self._code_generator = code_generator
		self._gateway: Optional["SnapshotGateway"] = None

	def attach(self, gateway: "SnapshotGateway") -> None:
		self._gateway = gateway

	async def create(self, name: str, topic: str, creator: Optional[CurrentUser]) -> Optional[models.StudySquad]:
		if creator is None:
			return None
		async with self._lock:
			squad = models.StudySquad(
				id=f"squad-{ulid.new()}",
				name=name,
				topic=topic,
				host_id=creator.uid,
				members=(policy.member_from_user(creator),),
				messages=(),
				timer_state=policy.fresh_timer(),
				is_private=False,
				created_at=self._clock(),
				join_code=self._unused_join_code(),
			)
			self._squads[squad.id] = squad
			count = len(self._squads)
		obs_metrics.set_squads_active(count)
		return squad

	async def insert(self, squad: models.StudySquad) -> models.StudySquad:
		"""Add an existing aggregate as the newest squad (seeding)."""
		if not squad.members:
			raise ValueError(f"squad {squad.id} has no members")
		async with self._lock:
			if squad.id in self._squads:
				raise ValueError(f"duplicate squad id {squad.id}")
			code = policy.normalise_join_code(squad.join_code)
			if any(policy.normalise_join_code(s.join_code) == code for s in self._squads.values()):
				raise ValueError(f"duplicate join code {squad.join_code}")
			self._squads[squad.id] = squad
			count = len(self._squads)
		obs_metrics.set_squads_active(count)
		return squad

	async def find_by_id(self, squad_id: str) -> Optional[models.StudySquad]:
		async with self._lock:
			return self._squads.get(squad_id)

	async def find_by_join_code(self, join_code: str) -> Optional[models.StudySquad]:
		code = policy.normalise_join_code(join_code)
		if not code:
			return None
		async with self._lock:
			for squad in self._squads.values():
				if policy.normalise_join_code(squad.join_code) == code:
					return squad
			return None

	async def list(self) -> List[models.StudySquad]:
		async with self._lock:
			return list(reversed(self._squads.values()))

	async def list_for_member(self, uid: str) -> List[models.StudySquad]:
		async with self._lock:
			return [squad for squad in reversed(self._squads.values()) if squad.has_member(uid)]

	async def count(self) -> int:
		async with self._lock:
			return len(self._squads)

	@asynccontextmanager
	async def exclusive(self, squad_id: str) -> AsyncIterator[Optional[models.StudySquad]]:
		"""Hold the squad's lock and yield its current version (None when missing)."""
		# Locks exist only for stored squads; unknown ids never grow the map.
		async with self._lock:
			lock = self._squad_locks.setdefault(squad_id, asyncio.Lock()) if squad_id in self._squads else None
		if lock is None:
			yield None
			return
		async with lock:
			yield await self.find_by_id(squad_id)

	async def save(self, squad: models.StudySquad) -> bool:
		"""Replace the stored version; refuses squads deleted or restored away meanwhile."""
		async with self._lock:
			if squad.id not in self._squads:
				return False
			self._squads[squad.id] = squad
			return True

	async def delete(self, squad_id: str) -> Optional[models.StudySquad]:
		async with self._lock:
			removed = self._squads.pop(squad_id, None)
			self._squad_locks.pop(squad_id, None)
			count = len(self._squads)
		if removed is not None:
			obs_metrics.set_squads_active(count)
			logger.info("squad removed", extra={"squad_id": squad_id})
		return removed

	async def replace_all(self, squads: Iterable[models.StudySquad]) -> int:
		"""Swap the whole collection in one step; ``squads`` is newest first."""
		incoming = [squad for squad in squads if squad.members]
		fresh: Dict[str, models.StudySquad] = {}
		for squad in reversed(incoming):
			fresh[squad.id] = squad
		async with self._lock:
			self._squads = fresh
			self._squad_locks = {key: lock for key, lock in self._squad_locks.items() if key in fresh}
			count = len(fresh)
		obs_metrics.set_squads_active(count)
		return count

	async def commit(self) -> None:
		"""Persist the collection through the attached snapshot gateway, if any."""
		if self._gateway is None or not settings.snapshot_on_write:
			return
		await self._gateway.save()

	def _unused_join_code(self) -> str:
		# Caller holds the collection lock.
		taken = {policy.normalise_join_code(squad.join_code) for squad in self._squads.values()}
		for _ in range(max(1, settings.join_code_max_attempts)):
			code = policy.normalise_join_code(self._code_generator())
			if code and code not in taken:
				return code
			logger.debug("join code collision, regenerating")
		raise policy.JoinCodeExhausted("join_code_exhausted")
