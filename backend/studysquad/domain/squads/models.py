"""Domain models for study squads."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Tuple


class TimerMode(str, enum.Enum):
    POMODORO = "pomodoro"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"


@dataclass(frozen=True, slots=True)
class SquadMember:
    uid: str
    display_name: str
    photo_url: str

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
        }


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    author: SquadMember
    content: str
    timestamp: datetime
    is_ai_message: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author": self.author.to_dict(),
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "isAIMessage": self.is_ai_message,
        }


@dataclass(frozen=True, slots=True)
class TimerState:
    mode: TimerMode
    time_left: int
    is_active: bool

    def is_running(self) -> bool:
        return self.is_active and self.time_left > 0

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "timeLeft": self.time_left,
            "isActive": self.is_active,
        }


@dataclass(frozen=True, slots=True)
class StudySquad:
    """Aggregate root. Updates produce a new instance via ``evolve``."""

    id: str
    name: str
    topic: str
    host_id: str
    timer_state: TimerState
    created_at: datetime
    join_code: str
    is_private: bool = False
    members: Tuple[SquadMember, ...] = field(default_factory=tuple)
    messages: Tuple[Message, ...] = field(default_factory=tuple)

    def has_member(self, uid: str) -> bool:
        return any(member.uid == uid for member in self.members)

    def member_ids(self) -> list[str]:
        return [member.uid for member in self.members]

    def evolve(self, **changes) -> "StudySquad":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "topic": self.topic,
            "hostId": self.host_id,
            "members": [member.to_dict() for member in self.members],
            "messages": [message.to_dict() for message in self.messages],
            "timerState": self.timer_state.to_dict(),
            "isPrivate": self.is_private,
            "createdAt": self.created_at.isoformat(),
            "joinCode": self.join_code,
        }
