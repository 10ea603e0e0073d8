from dataclasses import dataclass
from enum import Enum


class CycleState(Enum):
    """The phase the backup engine is currently in.

    Exactly one phase is active at a time; every cycle ends back at IDLE.
    """

    IDLE = "idle"
    CHECKING_STATUS = "status"
    STAGING = "add"
    COMMITTING = "commit"
    PUSHING = "push"
    PULLING = "pull"
    CHECKING_OUT = "checkout"


@dataclass
class RepositoryState:
    """What the engine knows about the repository it backs up.

    Attributes:
        branch (str | None): The checked-out branch name.
        remote (str | None): The remote that push/pull synchronize against.
        last_sync (float | None): Unix timestamp of the last successful push or
            pull, or None if nothing has been synced since start-up.
    """

    branch: str | None = None
    remote: str | None = None
    last_sync: float | None = None
