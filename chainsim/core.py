from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Tuple, Optional, Literal, List
from collections import deque
import logging

from .config import ChainParams, ChainSpec

logger = logging.getLogger(__name__)

ActionKind = Literal["bridge", "execute"]
ACTION_KINDS: Tuple[str, ...] = ("bridge", "execute")

def format_ledger(entries) -> str:
    if not entries:
        return "(empty)"
    return ", ".join(f"{amount:.6f}@{ticks}" for amount, ticks in entries)

# -----------------------------
# Events
# -----------------------------
@dataclass
class Event:
    tick: int
    event_type: str
    chain_id: Optional[str] = None
    amount: Optional[float] = None
    meta: dict = field(default_factory=dict)

class EventLog:
    def __init__(self, maxlen: Optional[int] = None) -> None:
        self.events = deque(maxlen=maxlen)

    def add(self, e: Event) -> None:
        self.events.append(e)

    def tail(self, n: int = 200) -> List[Event]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]

    def of_type(self, event_type: str) -> List[Event]:
        return [e for e in self.events if e.event_type == event_type]


# -----------------------------
# Actions
# -----------------------------
@dataclass(frozen=True)
class Action:
    kind: ActionKind
    source: str
    destination: str
    amount: float

    def __post_init__(self) -> None:
        if self.kind not in ACTION_KINDS:
            raise ValueError(f"unknown action kind: {self.kind!r}")

    @classmethod
    def bridge(cls, source: str, destination: str, amount: float) -> "Action":
        return cls("bridge", source, destination, amount)

    @classmethod
    def execute(cls, source: str, destination: str, amount: float) -> "Action":
        return cls("execute", source, destination, amount)


class ActionRejected(Exception):
    """Base for per-action validation failures. Never fatal to a run."""
    reason = "rejected"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason)

class SameChainError(ActionRejected):
    reason = "same_chain"

class UnknownChainError(ActionRejected):
    reason = "unknown_chain"

class InvalidAmountError(ActionRejected):
    reason = "invalid_amount"

class InsufficientSourceFunds(ActionRejected):
    reason = "insufficient_source_funds"

class InsufficientDestinationLiquidity(ActionRejected):
    reason = "insufficient_destination_liquidity"

class BelowGasCost(ActionRejected):
    reason = "below_gas_cost"


# -----------------------------
# Locked settlements
# -----------------------------
@dataclass
class LockedSettlement:
    amount: float
    remaining_ticks: int

class SettlementLedger:
    """Amounts credited to a chain but not yet spendable, in enqueue order."""

    def __init__(self) -> None:
        self.entries: List[LockedSettlement] = []

    def __len__(self) -> int:
        return len(self.entries)

    def add(self, amount: float, ticks: int) -> None:
        self.entries.append(LockedSettlement(amount=float(amount), remaining_ticks=int(ticks)))

    def age(self) -> List[float]:
        """
        Count every entry down by one tick (never below zero) and pop the ones
        that reached zero. Returns released amounts in enqueue order.
        """
        released: List[float] = []
        kept: List[LockedSettlement] = []
        for entry in self.entries:
            if entry.remaining_ticks > 0:
                entry.remaining_ticks -= 1
            if entry.remaining_ticks == 0:
                released.append(entry.amount)
            else:
                kept.append(entry)
        self.entries = kept
        return released

    def locked_total(self) -> float:
        return sum(e.amount for e in self.entries)

    def as_tuples(self) -> Tuple[Tuple[float, int], ...]:
        return tuple((e.amount, e.remaining_ticks) for e in self.entries)


# -----------------------------
# Chain
# -----------------------------
class Chain:
    def __init__(self, name: str, params: ChainParams, orderflow_balance: float,
                 outflow_balance: float, strategy_balance: float, cap_multiplier: float = 1.5) -> None:
        self.name = name
        self.params = params
        self.debug_ledger: bool = False

        self.orderflow_balance = float(orderflow_balance)
        self.outflow_balance = float(outflow_balance)
        self.strategy_balance = float(strategy_balance)
        self.max_orderflow_balance = self.orderflow_balance * cap_multiplier
        self.max_outflow_balance = self.outflow_balance * cap_multiplier
        # informational only, never enforced
        self.max_strategy_balance = self.strategy_balance * cap_multiplier

        self.ledger = SettlementLedger()

    @classmethod
    def from_spec(cls, spec: ChainSpec, cap_multiplier: float = 1.5) -> "Chain":
        return cls(
            name=spec.name,
            params=spec.params,
            orderflow_balance=spec.initial_orderflow_balance,
            outflow_balance=spec.initial_outflow_balance,
            strategy_balance=spec.initial_strategy_balance,
            cap_multiplier=cap_multiplier,
        )

    def regenerate(self) -> None:
        self.orderflow_balance = min(
            self.orderflow_balance + self.params.orderflow_regen_per_tick,
            self.max_orderflow_balance,
        )
        self.outflow_balance = min(
            self.outflow_balance + self.params.outflow_regen_per_tick,
            self.max_outflow_balance,
        )

    def lock(self, amount: float, ticks: int) -> None:
        if self.debug_ledger and logger.isEnabledFor(logging.DEBUG):
            before = format_ledger(self.ledger.as_tuples())
            self.ledger.add(amount, ticks)
            logger.debug("[LEDGER] chain=%s action=lock amount=%.6f ticks=%d before={ %s } after={ %s }",
                         self.name, amount, ticks, before, format_ledger(self.ledger.as_tuples()))
            return
        self.ledger.add(amount, ticks)

    def age_settlements(self) -> List[float]:
        released = self.ledger.age()
        for amount in released:
            self.strategy_balance += amount
        if released and self.debug_ledger and logger.isEnabledFor(logging.DEBUG):
            logger.debug("[LEDGER] chain=%s action=release amounts=%s remaining={ %s }",
                         self.name, released, format_ledger(self.ledger.as_tuples()))
        return released

    def locked_total(self) -> float:
        return self.ledger.locked_total()

    def view(self) -> "ChainView":
        return ChainView(
            name=self.name,
            params=self.params,
            orderflow_balance=self.orderflow_balance,
            outflow_balance=self.outflow_balance,
            strategy_balance=self.strategy_balance,
            max_orderflow_balance=self.max_orderflow_balance,
            max_outflow_balance=self.max_outflow_balance,
            max_strategy_balance=self.max_strategy_balance,
            locked_settlements=self.ledger.as_tuples(),
        )


@dataclass(frozen=True)
class ChainView:
    """Read-only copy of a chain handed to strategies."""
    name: str
    params: ChainParams
    orderflow_balance: float
    outflow_balance: float
    strategy_balance: float
    max_orderflow_balance: float
    max_outflow_balance: float
    max_strategy_balance: float
    locked_settlements: Tuple[Tuple[float, int], ...] = ()

    @property
    def locked_total(self) -> float:
        return sum(amount for amount, _ in self.locked_settlements)


# -----------------------------
# Receipts
# -----------------------------
@dataclass
class ActionReceipt:
    tick: int
    kind: str
    source: str
    destination: str
    amount: float
    status: Literal["executed", "failed"]
    net_amount: float = 0.0
    credited_amount: float = 0.0
    lock_ticks: int = 0
    fail_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "tick": self.tick,
            "kind": self.kind,
            "source": self.source,
            "destination": self.destination,
            "amount": float(self.amount),
            "net_amount": float(self.net_amount),
            "credited_amount": float(self.credited_amount),
            "lock_ticks": int(self.lock_ticks),
            "status": self.status,
            "fail_reason": self.fail_reason,
        }

class ReceiptStore:
    def __init__(self) -> None:
        self.receipts: List[ActionReceipt] = []

    def add(self, r: ActionReceipt) -> None:
        self.receipts.append(r)

    def tail(self, n: int = 200) -> List[ActionReceipt]:
        return self.receipts[-n:]

    def count(self, status: str) -> int:
        return sum(1 for r in self.receipts if r.status == status)

    def by_reason(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for r in self.receipts:
            if r.fail_reason:
                counts[r.fail_reason] = counts.get(r.fail_reason, 0) + 1
        return counts
