"""ASGI middleware binding request context into structured logs."""

from __future__ import annotations

import logging
import time
from typing import Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from studysquad.obs import logging as obs_logging
from studysquad.settings import settings


def _trusted_user_id(request: Request) -> Optional[str]:
	if not settings.trust_identity_headers:
		return None
	return (request.headers.get("X-User-Id") or "").strip() or None


class RequestContextMiddleware(BaseHTTPMiddleware):
	"""Tag every request with a request id and log its outcome."""

	def __init__(self, app) -> None:
		super().__init__(app)
		self._logger = logging.getLogger("studysquad.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get("X-Request-Id") or str(uuid4())
		request.state.request_id = request_id
		user_id = _trusted_user_id(request)
		tokens = obs_logging.bind_context(request_id=request_id, user_id=user_id)
		start = time.perf_counter()
		try:
			response = await call_next(request)
			response.headers.setdefault("X-Request-Id", request_id)
			extra: dict[str, object] = {
				"status": response.status_code,
				"method": request.method,
				"path": request.url.path,
				"latency_ms": round((time.perf_counter() - start) * 1000, 3),
				"request_id": request_id,
			}
			if user_id:
				extra["user_id"] = user_id
			self._logger.info("http_request", extra=extra)
			return response
		finally:
			obs_logging.reset_context(tokens)
