"""Error handlers for faults the engine raises instead of reporting."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from studysquad.domain.squads import SnapshotError

logger = logging.getLogger(__name__)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SnapshotError)
    async def snapshot_exc_handler(request: Request, exc: SnapshotError):  # type: ignore[override]
        # The in-memory change stands; only the snapshot flush failed.
        logger.warning("snapshot flush failed", extra={"path": request.url.path, "reason": str(exc)})
        payload = {
            "detail": "persistence_unavailable",
            "request_id": getattr(request.state, "request_id", None),
        }
        return JSONResponse(status_code=503, content=payload)
