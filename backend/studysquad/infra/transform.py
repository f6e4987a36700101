"""Content transforms applied to member-authored chat messages at write time."""

from __future__ import annotations

import base64
import binascii
from typing import Protocol


class ContentTransform(Protocol):
	def transform(self, plaintext: str) -> str:
		...


class IdentityTransform:
	def transform(self, plaintext: str) -> str:
		return plaintext

	def reveal(self, stored: str) -> str:
		return stored


class Base64Transform:
	"""Reversible, deterministic encoding of message bodies.

	Keeps plaintext out of snapshots and casual inspection; it is not encryption.
	"""

	prefix = "b64:"

	def transform(self, plaintext: str) -> str:
		encoded = base64.urlsafe_b64encode(plaintext.encode("utf-8", "surrogatepass")).decode("ascii")
		return f"{self.prefix}{encoded}"

	def reveal(self, stored: str) -> str:
		if not stored.startswith(self.prefix):
			return stored
		try:
			raw = base64.urlsafe_b64decode(stored[len(self.prefix):].encode("ascii"))
			return raw.decode("utf-8", "surrogatepass")
		except (binascii.Error, UnicodeError, ValueError):
			return stored


_TRANSFORMS = {
	"base64": Base64Transform,
	"identity": IdentityTransform,
}


def build_transform(name: str) -> ContentTransform:
	try:
		return _TRANSFORMS[name]()
	except KeyError as exc:
		raise ValueError(f"unknown content transform: {name}") from exc
