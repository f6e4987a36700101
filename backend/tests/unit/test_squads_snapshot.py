import json

import pytest

from studysquad.domain.squads import SnapshotError, SnapshotGateway, SquadRepository
from studysquad.domain.squads.seed import demo_squads, seed_demo_squads
from studysquad.infra.snapshot_store import (
    FileSnapshotStore,
    MemorySnapshotStore,
    RedisSnapshotStore,
    SnapshotStoreError,
    build_store,
)


async def _populated(engine, identity, alice, bob):
    identity.user = alice
    older = await engine.create_squad("Calc Crew", "Calculus")
    newer = await engine.create_squad("Physics Pals", "Mechanics")
    identity.user = bob
    await engine.join(older.id)
    await engine.send_message(older.id, "hi all")
    await engine.post_system_message(older.id, "Welcome!")
    identity.user = alice
    await engine.toggle_timer(older.id)
    await engine.tick(older.id)
    return older, newer


@pytest.mark.asyncio
async def test_snapshot_captures_every_field(engine, identity, alice, bob):
    older, newer = await _populated(engine, identity, alice, bob)
    gateway = SnapshotGateway(engine.repository)

    document = json.loads(await gateway.snapshot())

    assert document["version"] == 1
    assert [squad["id"] for squad in document["squads"]] == [newer.id, older.id]
    stored = document["squads"][1]
    assert set(stored) == {
        "id",
        "name",
        "topic",
        "hostId",
        "members",
        "messages",
        "timerState",
        "isPrivate",
        "createdAt",
        "joinCode",
    }
    assert stored["timerState"] == {"mode": "pomodoro", "timeLeft": 1499, "isActive": True}
    assert [m["uid"] for m in stored["members"]] == ["u1", "u2"]
    assert stored["members"][1]["photoURL"] == "https://i.pravatar.cc/40?u=u2"
    assert [m["isAIMessage"] for m in stored["messages"]] == [False, True]
    assert stored["messages"][1]["content"] == "Welcome!"


@pytest.mark.asyncio
async def test_restore_round_trip(engine, identity, alice, bob):
    await _populated(engine, identity, alice, bob)
    original = await engine.list_squads()
    document = await SnapshotGateway(engine.repository).snapshot()

    fresh = SquadRepository()
    count = await SnapshotGateway(fresh).restore(document)

    assert count == 2
    assert await fresh.list() == original
    restored = original[1]
    assert await fresh.find_by_join_code(restored.join_code.lower()) == restored


@pytest.mark.asyncio
async def test_invalid_restore_leaves_repository_untouched(engine, identity, alice):
    identity.user = alice
    squad = await engine.create_squad("Calc Crew", "Calculus")
    gateway = SnapshotGateway(engine.repository)
    good = json.loads(await gateway.snapshot())
    bad = json.loads(json.dumps(good))
    bad["squads"].append(dict(good["squads"][0], id="squad-two"))
    bad["squads"][0]["timerState"]["timeLeft"] = -5

    for document in ("not json", json.dumps(bad), json.dumps({"version": 2, "squads": []})):
        with pytest.raises(SnapshotError):
            await gateway.restore(document)

    assert await engine.list_squads() == [squad]


@pytest.mark.asyncio
async def test_restore_rejects_duplicate_join_codes(repository):
    squads = demo_squads()
    document = {
        "version": 1,
        "squads": [squads[0].to_dict(), dict(squads[1].to_dict(), joinCode=squads[0].join_code.lower())],
    }
    with pytest.raises(SnapshotError):
        await SnapshotGateway(repository).restore(json.dumps(document))
    assert await repository.list() == []


@pytest.mark.asyncio
async def test_restore_rejects_join_codes_differing_only_by_whitespace(repository):
    squads = demo_squads()
    document = {
        "version": 1,
        "squads": [squads[0].to_dict(), dict(squads[1].to_dict(), joinCode=f" {squads[0].join_code} ")],
    }
    with pytest.raises(SnapshotError):
        await SnapshotGateway(repository).restore(json.dumps(document))
    assert await repository.list() == []


@pytest.mark.asyncio
async def test_restore_drops_memberless_squads(repository):
    squads = demo_squads()
    document = {"version": 1, "squads": [squads[0].to_dict(), dict(squads[1].to_dict(), members=[])]}

    count = await SnapshotGateway(repository).restore(json.dumps(document))

    assert count == 1
    assert [squad.id for squad in await repository.list()] == [squads[0].id]


@pytest.mark.asyncio
async def test_save_and_load_through_memory_store(engine, identity, alice, bob):
    older, newer = await _populated(engine, identity, alice, bob)
    store = MemorySnapshotStore()
    await SnapshotGateway(engine.repository, store, autosave=False).save()

    target = SquadRepository()
    assert await SnapshotGateway(target, store).load() is True
    assert [squad.id for squad in await target.list()] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_load_from_empty_store(repository):
    assert await SnapshotGateway(repository, MemorySnapshotStore()).load() is False
    assert await SnapshotGateway(repository).load() is False


@pytest.mark.asyncio
async def test_file_store_writes_atomically(tmp_path, engine, identity, alice):
    identity.user = alice
    squad = await engine.create_squad("Calc Crew", "Calculus")
    path = tmp_path / "state" / "squads.json"
    store = FileSnapshotStore(path)

    await SnapshotGateway(engine.repository, store, autosave=False).save()

    assert json.loads(path.read_text())["squads"][0]["id"] == squad.id
    assert [p.name for p in path.parent.iterdir()] == ["squads.json"]
    target = SquadRepository()
    assert await SnapshotGateway(target, store).load() is True
    assert await target.find_by_id(squad.id) == squad


@pytest.mark.asyncio
async def test_file_store_missing_file_reads_none(tmp_path):
    assert await FileSnapshotStore(tmp_path / "absent.json").read() is None


@pytest.mark.asyncio
async def test_file_store_failure_surfaces_as_snapshot_error(tmp_path, repository):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = FileSnapshotStore(blocker / "squads.json")

    with pytest.raises(SnapshotStoreError):
        await store.write("{}")
    with pytest.raises(SnapshotError):
        await SnapshotGateway(repository, store).save()


@pytest.mark.asyncio
async def test_redis_store_round_trip(fake_redis, engine, identity, alice):
    identity.user = alice
    squad = await engine.create_squad("Calc Crew", "Calculus")
    store = RedisSnapshotStore(key="test:squads")

    await SnapshotGateway(engine.repository, store, autosave=False).save()

    assert await fake_redis.get("test:squads") is not None
    target = SquadRepository()
    assert await SnapshotGateway(target, store).load() is True
    assert await target.find_by_id(squad.id) == squad


@pytest.mark.asyncio
async def test_seed_only_fills_empty_repository(repository):
    assert await seed_demo_squads(repository) == 2
    assert [squad.id for squad in await repository.list()] == ["squad-1", "squad-2"]
    assert (await repository.find_by_join_code("reactux")).timer_state.is_active is True
    assert await seed_demo_squads(repository) == 0


def test_build_store_selects_backend():
    assert build_store("none") is None
    assert isinstance(build_store("file"), FileSnapshotStore)
    assert isinstance(build_store("redis"), RedisSnapshotStore)
    assert build_store("carrier-pigeon") is None
