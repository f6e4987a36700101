"""Demo squads for local development when no snapshot exists yet."""

from __future__ import annotations

from datetime import datetime
from typing import List

from studysquad.domain.squads import models, policy
from studysquad.domain.squads.repository import SquadRepository, utc_now


def demo_squads(now: datetime | None = None) -> List[models.StudySquad]:
	"""Return the demo squads newest first."""
	created_at = now or utc_now()
	running = models.TimerState(mode=models.TimerMode.POMODORO, time_left=policy.session_length(), is_active=True)
	return [
		models.StudySquad(
			id="squad-1",
			name="Late Night Study Crew",
			topic="Calculus II",
			host_id="mock-user-1",
			members=(models.SquadMember("mock-user-1", "Alex", "https://i.pravatar.cc/40?u=alex"),),
			timer_state=policy.fresh_timer(),
			created_at=created_at,
			join_code="CALC123",
		),
		models.StudySquad(
			id="squad-2",
			name="Frontend Masters",
			topic="React & TypeScript",
			host_id="mock-user-2",
			members=(
				models.SquadMember("mock-user-2", "Samantha", "https://i.pravatar.cc/40?u=samantha"),
				models.SquadMember("mock-user-3", "Jordan", "https://i.pravatar.cc/40?u=jordan"),
			),
			timer_state=running,
			created_at=created_at,
			join_code="REACTUX",
		),
	]


async def seed_demo_squads(repository: SquadRepository) -> int:
	"""Insert the demo squads into an empty repository; returns how many were added."""
	if await repository.count():
		return 0
	squads = demo_squads()
	# insert() puts each squad at the head, so go oldest first.
	for squad in reversed(squads):
		await repository.insert(squad)
	return len(squads)
