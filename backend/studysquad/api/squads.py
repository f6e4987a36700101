"""FastAPI routes for study squads."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from studysquad.domain.squads import SquadSessionEngine, schemas
from studysquad.infra.identity import ContextIdentity, CurrentUser, get_current_user, require_user

router = APIRouter(prefix="/squads", tags=["squads"])


def get_engine(request: Request) -> SquadSessionEngine:
	return request.app.state.runtime.engine


def get_identity(request: Request) -> ContextIdentity:
	return request.app.state.runtime.identity


def _not_found() -> HTTPException:
	return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="squad_not_found")


@router.post("", response_model=schemas.SquadDocument)
async def create_squad_endpoint(
	payload: schemas.SquadCreateRequest,
	user: Optional[CurrentUser] = Depends(get_current_user),
	engine: SquadSessionEngine = Depends(get_engine),
	identity: ContextIdentity = Depends(get_identity),
) -> schemas.SquadDocument:
	with identity.acting_as(require_user(user)):
		squad = await engine.create_squad(payload.name, payload.topic)
	if squad is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthenticated")
	return schemas.SquadDocument.from_domain(squad)


@router.get("", response_model=list[schemas.SquadDocument])
async def list_squads_endpoint(engine: SquadSessionEngine = Depends(get_engine)) -> list[schemas.SquadDocument]:
	return [schemas.SquadDocument.from_domain(squad) for squad in await engine.list_squads()]


@router.get("/my", response_model=list[schemas.SquadDocument])
async def list_my_squads_endpoint(
	user: Optional[CurrentUser] = Depends(get_current_user),
	engine: SquadSessionEngine = Depends(get_engine),
	identity: ContextIdentity = Depends(get_identity),
) -> list[schemas.SquadDocument]:
	with identity.acting_as(require_user(user)):
		squads = await engine.list_my_squads()
	return [schemas.SquadDocument.from_domain(squad) for squad in squads]


@router.post("/join/by-code", response_model=schemas.SquadDocument)
async def join_by_code_endpoint(
	payload: schemas.JoinByCodeRequest,
	user: Optional[CurrentUser] = Depends(get_current_user),
	engine: SquadSessionEngine = Depends(get_engine),
	identity: ContextIdentity = Depends(get_identity),
) -> schemas.SquadDocument:
	with identity.acting_as(require_user(user)):
		squad = await engine.join_by_code(payload.join_code)
	if squad is None:
		raise _not_found()
	return schemas.SquadDocument.from_domain(squad)


@router.get("/{squad_id}", response_model=schemas.SquadDocument)
async def get_squad_endpoint(squad_id: str, engine: SquadSessionEngine = Depends(get_engine)) -> schemas.SquadDocument:
	squad = await engine.get_squad(squad_id)
	if squad is None:
		raise _not_found()
	return schemas.SquadDocument.from_domain(squad)


@router.post("/{squad_id}/join", response_model=schemas.SquadDocument)
async def join_squad_endpoint(
	squad_id: str,
	user: Optional[CurrentUser] = Depends(get_current_user),
	engine: SquadSessionEngine = Depends(get_engine),
	identity: ContextIdentity = Depends(get_identity),
) -> schemas.SquadDocument:
	with identity.acting_as(require_user(user)):
		joined = await engine.join(squad_id)
	squad = await engine.get_squad(squad_id) if joined else None
	if squad is None:
		raise _not_found()
	return schemas.SquadDocument.from_domain(squad)


@router.post("/{squad_id}/leave", status_code=status.HTTP_200_OK)
async def leave_squad_endpoint(
	squad_id: str,
	user: Optional[CurrentUser] = Depends(get_current_user),
	engine: SquadSessionEngine = Depends(get_engine),
	identity: ContextIdentity = Depends(get_identity),
) -> dict:
	with identity.acting_as(require_user(user)):
		left = await engine.leave(squad_id)
	if not left:
		raise _not_found()
	return {"ok": True}


@router.post("/{squad_id}/messages", response_model=schemas.MessageDocument)
async def send_message_endpoint(
	squad_id: str,
	payload: schemas.MessageSendRequest,
	user: Optional[CurrentUser] = Depends(get_current_user),
	engine: SquadSessionEngine = Depends(get_engine),
	identity: ContextIdentity = Depends(get_identity),
) -> schemas.MessageDocument:
	with identity.acting_as(require_user(user)):
		message = await engine.send_message(squad_id, payload.content)
	if message is None:
		raise _not_found()
	return schemas.MessageDocument.model_validate(message.to_dict())


@router.post("/{squad_id}/timer/toggle", response_model=schemas.TimerStateDocument)
async def toggle_timer_endpoint(
	squad_id: str,
	user: Optional[CurrentUser] = Depends(get_current_user),
	engine: SquadSessionEngine = Depends(get_engine),
	identity: ContextIdentity = Depends(get_identity),
) -> schemas.TimerStateDocument:
	with identity.acting_as(require_user(user)):
		applied = await engine.toggle_timer(squad_id)
	return await _timer_response(engine, squad_id, applied)


@router.post("/{squad_id}/timer/reset", response_model=schemas.TimerStateDocument)
async def reset_timer_endpoint(
	squad_id: str,
	user: Optional[CurrentUser] = Depends(get_current_user),
	engine: SquadSessionEngine = Depends(get_engine),
	identity: ContextIdentity = Depends(get_identity),
) -> schemas.TimerStateDocument:
	with identity.acting_as(require_user(user)):
		applied = await engine.reset_timer(squad_id)
	return await _timer_response(engine, squad_id, applied)


async def _timer_response(engine: SquadSessionEngine, squad_id: str, applied: bool) -> schemas.TimerStateDocument:
	squad = await engine.get_squad(squad_id)
	if squad is None:
		raise _not_found()
	if not applied:
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="host_only")
	return schemas.TimerStateDocument.model_validate(squad.timer_state.to_dict())
