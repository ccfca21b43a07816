from __future__ import annotations
from typing import Dict, Iterable, Optional, Tuple
import math
import numbers

from .core import (
    Action,
    ActionReceipt,
    ActionRejected,
    BelowGasCost,
    Chain,
    InsufficientDestinationLiquidity,
    InsufficientSourceFunds,
    InvalidAmountError,
    SameChainError,
    UnknownChainError,
)


class ActionExecutor:
    """
    Validates strategy actions against live chain state and applies the
    accepted ones immediately, so later actions in the same tick see the
    effect of earlier ones.

    Gas and surplus always come from the source chain's params; the
    destination only supplies pool liquidity and receives the locked credit.
    """

    def __init__(self, chains: Iterable[Chain]) -> None:
        self.chains: Dict[str, Chain] = {}
        for chain in chains:
            if chain.name in self.chains:
                raise ValueError(f"duplicate chain name: {chain.name!r}")
            self.chains[chain.name] = chain

    def resolve(self, name: str) -> Optional[Chain]:
        return self.chains.get(name)

    def validate(self, action: Action) -> Tuple[Chain, Chain]:
        if action.source == action.destination:
            raise SameChainError(f"{action.kind} {action.source}->{action.destination}: chains can't be the same")

        source = self.resolve(action.source)
        destination = self.resolve(action.destination)
        if source is None or destination is None:
            missing = action.source if source is None else action.destination
            raise UnknownChainError(f"no chain named {missing!r}")

        amount = action.amount
        is_real = isinstance(amount, numbers.Real) and not isinstance(amount, bool)
        if not is_real or not math.isfinite(amount) or amount < 0:
            raise InvalidAmountError(f"amount {amount!r} is not a finite non-negative number")

        if source.strategy_balance < amount:
            raise InsufficientSourceFunds(
                f"{source.name} holds {source.strategy_balance:.6f}, needs {amount:.6f}"
            )

        if action.kind == "bridge":
            available = destination.outflow_balance
        else:
            available = destination.orderflow_balance
        if available < amount:
            raise InsufficientDestinationLiquidity(
                f"{destination.name} {action.kind} liquidity {available:.6f} below {amount:.6f}"
            )

        if amount < source.params.gas_cost:
            raise BelowGasCost(f"amount {amount:.6f} below {source.name} gas {source.params.gas_cost:.6f}")

        return source, destination

    def apply(self, tick: int, action: Action) -> ActionReceipt:
        """Validate and apply one action. Rejections come back as failed receipts."""
        try:
            source, destination = self.validate(action)
        except ActionRejected as exc:
            return ActionReceipt(
                tick=tick, kind=action.kind, source=action.source, destination=action.destination,
                amount=action.amount, status="failed", fail_reason=exc.reason,
            )

        amount = float(action.amount)
        net_amount = amount - source.params.gas_cost
        if action.kind == "bridge":
            credited = net_amount
            lock_ticks = source.params.bridging_time
            destination.outflow_balance -= amount
            # source pool is refilled by the full amount, gas included
            source.outflow_balance += amount
        else:
            credited = net_amount * source.params.execution_surplus
            lock_ticks = source.params.inventory_lock_time
            destination.orderflow_balance -= amount

        source.strategy_balance -= amount
        destination.lock(credited, lock_ticks)

        return ActionReceipt(
            tick=tick, kind=action.kind, source=source.name, destination=destination.name,
            amount=amount, status="executed", net_amount=net_amount,
            credited_amount=credited, lock_ticks=lock_ticks,
        )
