"""Per-sink publish results."""

from dataclasses import dataclass, field
from typing import List, Optional

BUS_SINK = "bus"
STORE_SINK = "store"


@dataclass
class PublishOutcome:
    """What happened at one sink during a publish call."""

    sink: str
    attempted: bool = False
    succeeded: bool = False
    attempts: int = 0
    last_error: Optional[Exception] = None

    @property
    def retried(self) -> bool:
        return self.attempts > 1


@dataclass
class PublishResult:
    """Successful publish: the bus write and, when eligible, the store write."""

    event_id: str
    outcomes: List[PublishOutcome] = field(default_factory=list)
    store_eligible: bool = True

    def outcome_for(self, sink: str) -> Optional[PublishOutcome]:
        for outcome in self.outcomes:
            if outcome.sink == sink:
                return outcome
        return None

    @property
    def succeeded(self) -> bool:
        return bool(self.outcomes) and all(o.succeeded for o in self.outcomes)

    @property
    def stored(self) -> bool:
        outcome = self.outcome_for(STORE_SINK)
        return outcome is not None and outcome.succeeded


__all__ = ["BUS_SINK", "STORE_SINK", "PublishOutcome", "PublishResult"]
