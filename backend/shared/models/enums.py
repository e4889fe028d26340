"""Domain enumerations for the Diamond Score platform."""
from __future__ import annotations

from enum import Enum


class GameStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINAL = "final"
    POSTPONED = "postponed"
    DELAYED = "delayed"

    @property
    def is_live(self) -> bool:
        return self == GameStatus.LIVE

    @property
    def is_terminal(self) -> bool:
        return self in (GameStatus.FINAL, GameStatus.POSTPONED)


class InningHalf(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"
    MID = "mid"
    END = "end"


class SourceStatus(str, Enum):
    """Health classification of an upstream source."""
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class StreamMsgType(str, Enum):
    INIT = "init"
    UPDATE = "update"
    PING = "ping"
