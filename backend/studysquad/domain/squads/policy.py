"""Policy helpers for study squads."""

from __future__ import annotations

import secrets
import string
from typing import Optional

from studysquad.domain.squads import models
from studysquad.infra.identity import CurrentUser
from studysquad.settings import settings

DEFAULT_DISPLAY_NAME = "User"
AVATAR_PLACEHOLDER_URL = "https://i.pravatar.cc/40?u={uid}"

SYSTEM_AUTHOR = models.SquadMember(
	uid="lumina-ai-observer",
	display_name="AI Observer",
	photo_url="",
)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


class JoinCodeExhausted(RuntimeError):
	"""No unused join code could be generated within the configured attempts."""


def session_length() -> int:
	return int(settings.session_length_seconds)


def fresh_timer() -> models.TimerState:
	return models.TimerState(mode=models.TimerMode.POMODORO, time_left=session_length(), is_active=False)


def member_from_user(user: CurrentUser) -> models.SquadMember:
	return models.SquadMember(
		uid=user.uid,
		display_name=user.display_name or DEFAULT_DISPLAY_NAME,
		photo_url=user.photo_url or AVATAR_PLACEHOLDER_URL.format(uid=user.uid),
	)


def normalise_join_code(code: Optional[str]) -> str:
	return (code or "").strip().upper()


def generate_join_code(length: Optional[int] = None) -> str:
	size = max(1, int(length or settings.join_code_length))
	return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(size))


def is_host(squad: models.StudySquad, user: Optional[CurrentUser]) -> bool:
	return user is not None and squad.host_id == user.uid


def message_id(squad: models.StudySquad, *, system: bool = False) -> str:
	kind = "ai-msg" if system else "msg"
	return f"{squad.id}-{kind}-{len(squad.messages) + 1}"
