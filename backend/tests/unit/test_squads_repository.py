from datetime import datetime, timezone

import pytest

from studysquad.domain.squads import SquadSessionEngine, policy
from studysquad.domain.squads.repository import SquadRepository
from studysquad.infra.identity import CurrentUser, StaticIdentity
from studysquad.settings import settings


@pytest.mark.asyncio
async def test_create_requires_creator(repository):
    assert await repository.create("Calc Crew", "Calculus", None) is None
    assert await repository.list() == []


@pytest.mark.asyncio
async def test_create_starts_with_creator_as_host(repository, alice):
    squad = await repository.create("Calc Crew", "Calculus", alice)

    assert squad is not None
    assert squad.id.startswith("squad-")
    assert squad.host_id == "u1"
    assert squad.member_ids() == ["u1"]
    assert squad.members[0].display_name == "Alice"
    assert squad.timer_state.to_dict() == {"mode": "pomodoro", "timeLeft": 1500, "isActive": False}
    assert squad.join_code and squad.join_code == squad.join_code.upper()
    assert squad.messages == ()
    assert squad.is_private is False
    assert squad.created_at.tzinfo is not None
    assert await repository.find_by_id(squad.id) == squad


@pytest.mark.asyncio
async def test_list_is_newest_first(repository, alice):
    first = await repository.create("First", "A", alice)
    second = await repository.create("Second", "B", alice)
    third = await repository.create("Third", "C", alice)

    assert [squad.id for squad in await repository.list()] == [third.id, second.id, first.id]


@pytest.mark.asyncio
async def test_find_by_join_code_ignores_case(repository, alice):
    squad = await repository.create("Calc Crew", "Calculus", alice)

    assert await repository.find_by_join_code(squad.join_code.lower()) == squad
    assert await repository.find_by_join_code(f"  {squad.join_code}  ") == squad
    assert await repository.find_by_join_code("NOPE00") is None
    assert await repository.find_by_join_code("") is None


@pytest.mark.asyncio
async def test_join_code_collision_regenerates(alice):
    codes = iter(["abc123", "ABC123", "xyz789"])
    repository = SquadRepository(code_generator=lambda: next(codes))

    first = await repository.create("One", "A", alice)
    second = await repository.create("Two", "B", alice)

    assert first.join_code == "ABC123"
    assert second.join_code == "XYZ789"


@pytest.mark.asyncio
async def test_join_code_exhaustion_raises(alice):
    original = settings.join_code_max_attempts
    settings.join_code_max_attempts = 3
    repository = SquadRepository(code_generator=lambda: "SAME00")
    try:
        await repository.create("One", "A", alice)
        with pytest.raises(policy.JoinCodeExhausted):
            await repository.create("Two", "B", alice)
    finally:
        settings.join_code_max_attempts = original
    assert len(await repository.list()) == 1


@pytest.mark.asyncio
async def test_list_for_member(repository, alice, bob):
    mine = await repository.create("Mine", "A", alice)
    await repository.create("Theirs", "B", bob)

    assert [squad.id for squad in await repository.list_for_member("u1")] == [mine.id]
    assert await repository.list_for_member("nobody") == []


@pytest.mark.asyncio
async def test_insert_rejects_duplicates_and_empty_squads(repository, alice):
    squad = await repository.create("Calc Crew", "Calculus", alice)

    with pytest.raises(ValueError):
        await repository.insert(squad)
    with pytest.raises(ValueError):
        await repository.insert(squad.evolve(id="squad-other", join_code=squad.join_code.lower()))
    with pytest.raises(ValueError):
        await repository.insert(squad.evolve(id="squad-empty", join_code="EMPTY1", members=()))


@pytest.mark.asyncio
async def test_save_refuses_deleted_squad(repository, alice):
    squad = await repository.create("Calc Crew", "Calculus", alice)
    removed = await repository.delete(squad.id)

    assert removed == squad
    assert await repository.find_by_id(squad.id) is None
    assert await repository.save(squad.evolve(name="Renamed")) is False
    assert await repository.delete(squad.id) is None


@pytest.mark.asyncio
async def test_exclusive_yields_current_version(repository, alice):
    squad = await repository.create("Calc Crew", "Calculus", alice)
    await repository.save(squad.evolve(topic="Linear Algebra"))

    async with repository.exclusive(squad.id) as current:
        assert current.topic == "Linear Algebra"
    async with repository.exclusive("squad-missing") as missing:
        assert missing is None


@pytest.mark.asyncio
async def test_returned_versions_are_stable(repository, alice):
    squad = await repository.create("Calc Crew", "Calculus", alice)
    await repository.save(squad.evolve(members=squad.members + (policy.member_from_user(CurrentUser(uid="u9")),)))

    assert squad.member_ids() == ["u1"]
    assert (await repository.find_by_id(squad.id)).member_ids() == ["u1", "u9"]


@pytest.mark.asyncio
async def test_uses_injected_clock(alice):
    moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    repository = SquadRepository(clock=lambda: moment)

    squad = await repository.create("Calc Crew", "Calculus", alice)

    assert squad.created_at == moment


@pytest.mark.asyncio
async def test_unknown_ids_do_not_retain_locks(repository, alice):
    engine = SquadSessionEngine(repository, StaticIdentity(alice))
    for i in range(200):
        assert await engine.join(f"nope-{i}") is False
        assert await engine.tick(f"ghost-{i}") is None
    assert repository._squad_locks == {}

    squad = await engine.create_squad("Calc Crew", "Calculus")
    await engine.tick(squad.id)
    assert list(repository._squad_locks) == [squad.id]

    await engine.leave(squad.id)
    assert repository._squad_locks == {}
