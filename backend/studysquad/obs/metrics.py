"""Central registry for Prometheus metrics used by the squad engine."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

SQUADS_CREATED = Counter(
	"studysquad_squads_created_total",
	"Squads created",
)

SQUADS_DELETED = Counter(
	"studysquad_squads_deleted_total",
	"Squads removed after their last member left",
)

SQUADS_ACTIVE = Gauge(
	"studysquad_squads_active",
	"Squads currently held by the repository",
)

SQUAD_JOINS = Counter(
	"studysquad_squad_joins_total",
	"Join operations",
	["outcome"],
)

SQUAD_LEAVES = Counter(
	"studysquad_squad_leaves_total",
	"Leave operations",
)

SQUAD_MESSAGES = Counter(
	"studysquad_squad_messages_total",
	"Messages appended to squad chat",
	["kind"],
)

TIMER_CONTROLS = Counter(
	"studysquad_timer_controls_total",
	"Host timer control requests",
	["action", "outcome"],
)

TIMER_TICKS = Counter(
	"studysquad_timer_ticks_total",
	"Timer ticks applied",
)

TIMER_DRIVERS = Gauge(
	"studysquad_timer_drivers_running",
	"Squads with a running tick loop",
)

SNAPSHOTS = Counter(
	"studysquad_snapshots_total",
	"Snapshot gateway operations",
	["op", "outcome"],
)


def inc_squad_created() -> None:
	SQUADS_CREATED.inc()


def inc_squad_deleted() -> None:
	SQUADS_DELETED.inc()


def set_squads_active(count: int) -> None:
	SQUADS_ACTIVE.set(float(count))


def inc_squad_join(outcome: str) -> None:
	SQUAD_JOINS.labels(outcome=outcome).inc()


def inc_squad_leave() -> None:
	SQUAD_LEAVES.inc()


def inc_squad_message(kind: str) -> None:
	SQUAD_MESSAGES.labels(kind=kind).inc()


def inc_timer_control(action: str, outcome: str) -> None:
	TIMER_CONTROLS.labels(action=action, outcome=outcome).inc()


def inc_timer_tick() -> None:
	TIMER_TICKS.inc()


def set_timer_drivers(count: int) -> None:
	TIMER_DRIVERS.set(float(count))


def inc_snapshot(op: str, outcome: str) -> None:
	SNAPSHOTS.labels(op=op, outcome=outcome).inc()
