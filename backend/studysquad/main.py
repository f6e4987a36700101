"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from studysquad import obs
from studysquad.api import squads as squads_api
from studysquad.api.errors import install_error_handlers
from studysquad.domain.squads import SnapshotError, SnapshotGateway, SquadRepository, SquadSessionEngine, TimerDriver
from studysquad.domain.squads.seed import seed_demo_squads
from studysquad.infra.identity import ContextIdentity
from studysquad.infra.snapshot_store import SnapshotStore, build_store
from studysquad.infra.transform import build_transform
from studysquad.obs.middleware import RequestContextMiddleware
from studysquad.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class SquadRuntime:
	"""Everything one process needs to serve squads, wired explicitly."""

	repository: SquadRepository
	identity: ContextIdentity
	driver: TimerDriver
	gateway: SnapshotGateway
	engine: SquadSessionEngine

	async def startup(self) -> None:
		restored = await self.gateway.load()
		if not restored and settings.seed_demo_squads:
			seeded = await seed_demo_squads(self.repository)
			logger.info("seeded demo squads", extra={"squads": seeded})
		resumed = await self.driver.resume(self.engine)
		logger.info("squad runtime started", extra={"restored": restored, "timers_resumed": resumed})

	async def shutdown(self) -> None:
		await self.driver.shutdown()
		try:
			await self.gateway.save()
		except SnapshotError:
			logger.exception("final snapshot flush failed")
		logger.info("squad runtime stopped")


def build_runtime(store: Optional[SnapshotStore] = None, *, use_configured_store: bool = True) -> SquadRuntime:
	if store is None and use_configured_store:
		store = build_store()
	repository = SquadRepository()
	identity = ContextIdentity()
	driver = TimerDriver()
	gateway = SnapshotGateway(repository, store)
	engine = SquadSessionEngine(
		repository,
		identity,
		build_transform(settings.content_transform),
		driver=driver,
	)
	return SquadRuntime(repository=repository, identity=identity, driver=driver, gateway=gateway, engine=engine)


def create_app(runtime: Optional[SquadRuntime] = None) -> FastAPI:
	runtime = runtime or build_runtime()

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		obs.init()
		await runtime.startup()
		try:
			yield
		finally:
			await runtime.shutdown()

	app = FastAPI(title="studysquad", lifespan=lifespan)
	app.state.runtime = runtime
	app.add_middleware(RequestContextMiddleware)
	install_error_handlers(app)
	app.include_router(squads_api.router)

	@app.get("/metrics", include_in_schema=False)
	async def metrics_endpoint() -> Response:
		return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

	return app


app = create_app()
