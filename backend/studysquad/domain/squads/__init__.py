"""Study squads domain exports."""

from .repository import SquadRepository
from .service import SquadSessionEngine
from .snapshot import SnapshotError, SnapshotGateway
from .ticker import TimerDriver

__all__ = ["SquadRepository", "SquadSessionEngine", "SnapshotGateway", "SnapshotError", "TimerDriver"]
