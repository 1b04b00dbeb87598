"""Data types for ledger entries, discovery results and pipeline state."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class LogEntry:
    index: int
    message: str
    producer: str
    created_at: float

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "message": self.message,
            "producer": self.producer,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LogEntry":
        return cls(
            index=int(data["index"]),
            message=str(data["message"]),
            producer=str(data.get("producer", "")),
            created_at=float(data.get("created_at", 0.0)),
        )


@dataclass(frozen=True)
class AppendReceipt:
    index: int
    confirmation_id: str


class Confidence(Enum):
    EXACT = "exact"
    APPROXIMATE = "approximate"


@dataclass(frozen=True)
class DiscoveredTail:
    """Highest populated index; ``highest_index`` is None for an empty ledger."""

    highest_index: int | None
    confidence: Confidence = Confidence.EXACT

    @property
    def found(self) -> bool:
        return self.highest_index is not None


@dataclass(frozen=True)
class TailResult:
    total_count: int
    entries: list[LogEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "count": self.total_count,
            "displayed": len(self.entries),
            "logs": [e.to_dict() for e in self.entries],
        }


@dataclass(frozen=True)
class PendingLine:
    text: str
    enqueued_at: float


@dataclass
class QuotaState:
    count: int = 0
    window_start: float = 0.0
    window_length: float = 24 * 60 * 60


@dataclass
class PipelineState:
    last_sent_at: float | None = None
    quota: QuotaState = field(default_factory=QuotaState)
    stopped: bool = False
