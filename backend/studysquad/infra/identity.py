"""Acting-user resolution for squad operations.

The engine never authenticates anyone itself. It asks an injected provider
for the current user and treats ``None`` as "unauthenticated".
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol

from fastapi import Header, HTTPException, status

from studysquad.settings import settings


@dataclass(frozen=True, slots=True)
class CurrentUser:
	uid: str
	display_name: Optional[str] = None
	photo_url: Optional[str] = None


class IdentityProvider(Protocol):
	def current_user(self) -> Optional[CurrentUser]:
		...


class StaticIdentity:
	"""Provider returning whichever user was last assigned (CLI tools and tests)."""

	def __init__(self, user: Optional[CurrentUser] = None) -> None:
		self.user = user

	def current_user(self) -> Optional[CurrentUser]:
		return self.user


_CURRENT_USER: ContextVar[Optional[CurrentUser]] = ContextVar("squad_current_user", default=None)


class ContextIdentity:
	"""Provider backed by a context variable, so each request/task sees its own user."""

	def current_user(self) -> Optional[CurrentUser]:
		return _CURRENT_USER.get()

	@contextmanager
	def acting_as(self, user: Optional[CurrentUser]) -> Iterator[Optional[CurrentUser]]:
		token = _CURRENT_USER.set(user)
		try:
			yield user
		finally:
			_CURRENT_USER.reset(token)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
	x_user_photo: Optional[str] = Header(default=None, alias="X-User-Photo"),
) -> Optional[CurrentUser]:
	"""Resolve the acting user forwarded by the upstream identity gateway.

	Missing identity is not an error here: the engine decides what an
	unauthenticated call means for each operation.
	"""
	if not settings.trust_identity_headers:
		return None
	uid = (x_user_id or "").strip()
	if not uid:
		return None
	return CurrentUser(
		uid=uid,
		display_name=(x_user_name or "").strip() or None,
		photo_url=(x_user_photo or "").strip() or None,
	)


def require_user(user: Optional[CurrentUser]) -> CurrentUser:
	if user is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthenticated")
	return user
