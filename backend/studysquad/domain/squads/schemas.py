"""Pydantic schemas for squad payloads and snapshot documents."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from studysquad.domain.squads import models, policy

SNAPSHOT_VERSION = 1


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SquadMemberDocument(_Document):
    uid: str = Field(..., min_length=1)
    display_name: str = Field(..., alias="displayName")
    photo_url: str = Field(default="", alias="photoURL")

    def to_domain(self) -> models.SquadMember:
        return models.SquadMember(uid=self.uid, display_name=self.display_name, photo_url=self.photo_url)


class MessageDocument(_Document):
    id: str = Field(..., min_length=1)
    author: SquadMemberDocument
    content: str
    timestamp: datetime
    is_ai_message: bool = Field(default=False, alias="isAIMessage")

    def to_domain(self) -> models.Message:
        return models.Message(
            id=self.id,
            author=self.author.to_domain(),
            content=self.content,
            timestamp=self.timestamp,
            is_ai_message=self.is_ai_message,
        )


class TimerStateDocument(_Document):
    mode: models.TimerMode = models.TimerMode.POMODORO
    time_left: int = Field(..., ge=0, alias="timeLeft")
    is_active: bool = Field(..., alias="isActive")

    def to_domain(self) -> models.TimerState:
        return models.TimerState(mode=self.mode, time_left=self.time_left, is_active=self.is_active)


class SquadDocument(_Document):
    id: str = Field(..., min_length=1)
    name: str
    topic: str
    host_id: str = Field(..., alias="hostId")
    members: List[SquadMemberDocument] = Field(default_factory=list)
    messages: List[MessageDocument] = Field(default_factory=list)
    timer_state: TimerStateDocument = Field(..., alias="timerState")
    is_private: bool = Field(default=False, alias="isPrivate")
    created_at: datetime = Field(..., alias="createdAt")
    join_code: str = Field(..., min_length=1, alias="joinCode")

    @model_validator(mode="after")
    def _unique_members(self) -> "SquadDocument":
        uids = [member.uid for member in self.members]
        if len(uids) != len(set(uids)):
            raise ValueError(f"duplicate member uid in squad {self.id}")
        return self

    @classmethod
    def from_domain(cls, squad: models.StudySquad) -> "SquadDocument":
        return cls.model_validate(squad.to_dict())

    def to_domain(self) -> models.StudySquad:
        return models.StudySquad(
            id=self.id,
            name=self.name,
            topic=self.topic,
            host_id=self.host_id,
            members=tuple(member.to_domain() for member in self.members),
            messages=tuple(message.to_domain() for message in self.messages),
            timer_state=self.timer_state.to_domain(),
            is_private=self.is_private,
            created_at=self.created_at,
            join_code=self.join_code,
        )


class SnapshotDocument(_Document):
    version: Literal[1] = SNAPSHOT_VERSION
    squads: List[SquadDocument] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_keys(self) -> "SnapshotDocument":
        ids = [squad.id for squad in self.squads]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate squad id in snapshot")
        codes = [policy.normalise_join_code(squad.join_code) for squad in self.squads]
        if len(codes) != len(set(codes)):
            raise ValueError("duplicate join code in snapshot")
        return self


class SquadCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)
    topic: str = Field(default="", max_length=120)


class JoinByCodeRequest(BaseModel):
    join_code: str = Field(..., min_length=1, max_length=32)


class MessageSendRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)
