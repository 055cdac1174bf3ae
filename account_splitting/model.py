"""Domain models for transfer runs.

A run processes *units*: one chunk of recipients in batch mode, one sending
wallet in sequential mode. Each unit ends in a :class:`DispatchOutcome` and the
run as a whole in an immutable :class:`RunSummary`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Sequence, Tuple

from .fees import FeeQuote


class UnitStatus(str, Enum):
    """Lifecycle of one unit of work."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED_SUCCESS = "confirmed-success"
    CONFIRMED_REVERTED = "confirmed-reverted"
    SUBMISSION_FAILED = "submission-failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {
        UnitStatus.CONFIRMED_SUCCESS,
        UnitStatus.CONFIRMED_REVERTED,
        UnitStatus.SUBMISSION_FAILED,
    }
)


@dataclass(frozen=True)
class TransferIntent:
    """What every unit of a run sends, and how fast."""

    unit_amount: int
    fee: FeeQuote
    max_units: int = 0
    pace_interval: float = 0.0

    def cap(self, items: Sequence[Any]) -> list[Any]:
        """Return ``items`` truncated to ``max_units`` (0 means no cap)."""

        if self.max_units > 0:
            return list(items[: self.max_units])
        return list(items)


@dataclass(frozen=True)
class Batch:
    """One contract call worth of recipients."""

    recipients: Tuple[str, ...]
    amounts: Tuple[int, ...]
    index: int
    total_batches: int

    def __post_init__(self) -> None:
        if len(self.recipients) != len(self.amounts):
            raise ValueError(
                f"batch {self.index} has {len(self.recipients)} recipients but "
                f"{len(self.amounts)} amounts"
            )

    @property
    def total_value(self) -> int:
        return sum(self.amounts)

    def __len__(self) -> int:
        return len(self.recipients)


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one unit (a batch or a single wallet transfer)."""

    unit_index: int
    status: UnitStatus
    address: str | None = None
    transaction_hash: str | None = None
    gas_used: int | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if not self.status.is_terminal:
            raise ValueError(f"outcome for unit {self.unit_index} must be terminal, got {self.status.value}")

    @property
    def confirmed(self) -> bool:
        return self.status is UnitStatus.CONFIRMED_SUCCESS

    @property
    def failed(self) -> bool:
        return self.status in (UnitStatus.CONFIRMED_REVERTED, UnitStatus.SUBMISSION_FAILED)

    def to_jsonable(self) -> Dict[str, Any]:
        return {
            "unit_index": self.unit_index,
            "status": self.status.value,
            "address": self.address,
            "transaction_hash": self.transaction_hash,
            "confirmed": self.confirmed,
            "gas_used": self.gas_used,
            "error": self.error,
        }


@dataclass(frozen=True)
class RunSummary:
    """Terminal report of a run.

    ``total_units`` counts every planned unit; when a batch run aborts, units
    after the failing one are neither succeeded nor failed but ``skipped``.
    """

    mode: str
    total_units: int
    outcomes: Tuple[DispatchOutcome, ...] = field(default_factory=tuple)
    aborted: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.confirmed)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.failed)

    @property
    def skipped(self) -> int:
        return self.total_units - len(self.outcomes)

    @property
    def ok(self) -> bool:
        return not self.aborted and self.failed == 0

    def to_jsonable(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "total_units": self.total_units,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "aborted": self.aborted,
            "outcomes": [outcome.to_jsonable() for outcome in self.outcomes],
        }
