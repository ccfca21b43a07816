from __future__ import annotations
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, Union

from .core import Action, Chain, ChainView


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of every chain at the start of a tick's strategy call."""
    tick: int
    chains: Mapping[str, ChainView]

    @classmethod
    def capture(cls, tick: int, chains: Sequence[Chain]) -> "Snapshot":
        views: Dict[str, ChainView] = {c.name: c.view() for c in chains}
        return cls(tick=tick, chains=MappingProxyType(views))

    def chain(self, name: str) -> Optional[ChainView]:
        return self.chains.get(name)

    def __iter__(self) -> Iterator[ChainView]:
        return iter(self.chains.values())

    def __len__(self) -> int:
        return len(self.chains)


class Strategy(Protocol):
    def on_tick(self, snapshot: Snapshot) -> Optional[Sequence[Action]]:
        ...


StrategyFn = Callable[[Snapshot], Optional[Iterable[Action]]]
StrategyLike = Union[Strategy, StrategyFn]


def as_callable(strategy: StrategyLike) -> StrategyFn:
    on_tick = getattr(strategy, "on_tick", None)
    if callable(on_tick):
        return on_tick
    if callable(strategy):
        return strategy
    raise TypeError(f"strategy must define on_tick(snapshot) or be callable, got {type(strategy).__name__}")


class IdleStrategy:
    """Proposes nothing; the baseline every other policy is measured against."""

    def on_tick(self, snapshot: Snapshot) -> List[Action]:
        return []


class ExampleStrategy:
    """
    Demo policy: keep bridging 2 from A to B while A has funds and B has
    bridging liquidity, and fill orders of 5 on B settling on A once B holds
    enough inventory.
    """

    bridge_amount: float = 2.0
    execute_amount: float = 5.0

    def on_tick(self, snapshot: Snapshot) -> List[Action]:
        actions: List[Action] = []
        a = snapshot.chain("A")
        b = snapshot.chain("B")
        if a is None or b is None:
            return actions

        if a.strategy_balance > self.bridge_amount and b.outflow_balance > self.bridge_amount:
            actions.append(Action.bridge("A", "B", self.bridge_amount))

        if b.strategy_balance > self.execute_amount and b.orderflow_balance > self.execute_amount:
            actions.append(Action.execute("B", "A", self.execute_amount))
        return actions


STRATEGIES: Dict[str, Callable[[], Strategy]] = {
    "idle": IdleStrategy,
    "example": ExampleStrategy,
}
