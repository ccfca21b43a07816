from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging

from .config import ScenarioConfig
from .core import Action, ActionReceipt, Chain, Event, EventLog, ReceiptStore
from .executor import ActionExecutor
from .factory import ChainFactory
from .metrics import MetricsStore
from .strategy import Snapshot, StrategyLike, as_callable

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    ticks: int
    initial_total: float
    final_total: float
    actions_executed: int
    actions_failed: int

    @property
    def pnl(self) -> float:
        return self.final_total - self.initial_total


class SimulationEngine:
    """
    Owns every chain and steps them tick by tick:
    regenerate pools, release matured settlements, ask the strategy for
    actions, then validate and apply those actions in order.

    `tick` counts completed ticks. Events are stamped with the 0-based index
    of the tick being processed; metrics rows with `tick` after the step.
    """

    def __init__(self, cfg: Optional[ScenarioConfig] = None, strategy: Optional[StrategyLike] = None) -> None:
        self.cfg = cfg or ScenarioConfig()
        self._on_tick = as_callable(strategy) if strategy is not None else None

        self.tick: int = 0
        self.log = EventLog(maxlen=self.cfg.event_log_maxlen)
        self.metrics = MetricsStore()
        self.receipts = ReceiptStore()

        self.factory = ChainFactory(self.cfg)
        self.chains: List[Chain] = self.factory.build_chains()
        self.executor = ActionExecutor(self.chains)

        self._executed_tick: int = 0
        self._failed_tick: int = 0
        self._released_tick: float = 0.0

        self.snapshot_metrics()

    def chain(self, name: str) -> Optional[Chain]:
        return self.executor.resolve(name)

    def snapshot(self) -> Snapshot:
        return Snapshot.capture(self.tick, self.chains)

    # -----------------------------
    # Aggregates
    # -----------------------------
    def strategy_total(self) -> float:
        return sum(c.strategy_balance for c in self.chains)

    def locked_total(self) -> float:
        return sum(c.locked_total() for c in self.chains)

    def total_value(self) -> float:
        return self.strategy_total() + self.locked_total()

    def report_state(self, label: str = "state") -> Dict[str, object]:
        report: Dict[str, object] = {}
        total = 0.0
        for c in self.chains:
            locked = c.locked_total()
            logger.info("Chain [%s] balance [%.6f] + locked [%.6f]", c.name, c.strategy_balance, locked)
            report[c.name] = {"balance": c.strategy_balance, "locked": locked}
            total += c.strategy_balance + locked
        logger.info("Total : %.6f", total)
        report["total"] = total
        self.log.add(Event(self.tick, "STATE_REPORTED", amount=total, meta={"label": label}))
        return report

    # -----------------------------
    # Tick loop
    # -----------------------------
    def run(self, iterations: Optional[int] = None) -> RunSummary:
        n = self.cfg.iterations if iterations is None else int(iterations)
        if n < 1:
            raise ValueError("iterations must be a positive integer")
        executed_before = self.receipts.count("executed")
        failed_before = self.receipts.count("failed")

        initial_total = float(self.report_state("initial")["total"])
        logger.info("Starting simulation..")
        self.log.add(Event(self.tick, "SIM_STARTED", meta={"iterations": n}))
        self.step(n)
        logger.info("..finished.")
        self.log.add(Event(self.tick, "SIM_FINISHED", meta={"iterations": n}))
        final_total = float(self.report_state("final")["total"])

        return RunSummary(
            ticks=n,
            initial_total=initial_total,
            final_total=final_total,
            actions_executed=self.receipts.count("executed") - executed_before,
            actions_failed=self.receipts.count("failed") - failed_before,
        )

    def step(self, n_ticks: int = 1) -> None:
        for _ in range(n_ticks):
            t = self.tick
            self._executed_tick = 0
            self._failed_tick = 0
            self._released_tick = 0.0

            stride = int(self.cfg.progress_stride_ticks or 0)
            if stride > 0 and t % stride == 0:
                logger.info("... [%d] ...", t)

            for c in self.chains:
                c.regenerate()
            for c in self.chains:
                self._release_settlements(t, c)

            for action in self._collect_actions(t):
                self.apply_action(t, action)

            self.tick += 1
            self.snapshot_metrics()

    def _release_settlements(self, t: int, chain: Chain) -> None:
        for amount in chain.age_settlements():
            self._released_tick += amount
            logger.info("[%d]: amount [%.6f] now available on chain [%s]", t, amount, chain.name)
            self.log.add(Event(t, "SETTLEMENT_RELEASED", chain_id=chain.name, amount=amount))

    def _collect_actions(self, t: int) -> List[Action]:
        if self._on_tick is None:
            return []
        proposed = self._on_tick(Snapshot.capture(t, self.chains))
        if proposed is None:
            return []
        actions = list(proposed)
        for action in actions:
            if not isinstance(action, Action):
                raise TypeError(f"strategy returned {type(action).__name__}, expected Action")
        return actions

    def apply_action(self, t: int, action: Action) -> ActionReceipt:
        receipt = self.executor.apply(t, action)
        self.receipts.add(receipt)
        if receipt.status == "executed":
            self._executed_tick += 1
            if action.kind == "bridge":
                logger.info("[%d]: Bridged from [%s] to [%s] amount [%.6f] in [%d] ticks",
                            t, receipt.source, receipt.destination, receipt.credited_amount, receipt.lock_ticks)
            else:
                logger.info("[%d]: Executed order on [%s] credited on [%s] amount [%.6f] in [%d] ticks",
                            t, receipt.source, receipt.destination, receipt.credited_amount, receipt.lock_ticks)
            self.log.add(Event(t, "ACTION_EXECUTED", chain_id=receipt.destination, amount=receipt.amount,
                               meta={"receipt": receipt.to_dict()}))
        else:
            self._failed_tick += 1
            logger.info("[%d]: !!! Failed [%s] action %s -> %s amount [%s]: %s",
                        t, action.kind, action.source, action.destination, action.amount, receipt.fail_reason)
            self.log.add(Event(t, "ACTION_FAILED", chain_id=action.source, amount=action.amount,
                               meta={"reason": receipt.fail_reason, "receipt": receipt.to_dict()}))
        return receipt

    # -----------------------------
    # Metrics
    # -----------------------------
    def snapshot_metrics(self, force: bool = False) -> None:
        stride = int(self.cfg.metrics_stride or 0)
        if not force and (stride <= 0 or self.tick % stride != 0):
            return
        rows = []
        for c in self.chains:
            rows.append({
                "tick": self.tick,
                "chain": c.name,
                "strategy_balance": c.strategy_balance,
                "locked": c.locked_total(),
                "locked_entries": len(c.ledger),
                "orderflow_balance": c.orderflow_balance,
                "outflow_balance": c.outflow_balance,
                "max_orderflow_balance": c.max_orderflow_balance,
                "max_outflow_balance": c.max_outflow_balance,
            })
        self.metrics.add_chain_rows(rows)

        strategy_total = self.strategy_total()
        locked_total = self.locked_total()
        self.metrics.add_network({
            "tick": self.tick,
            "strategy_total": strategy_total,
            "locked_total": locked_total,
            "total_value": strategy_total + locked_total,
            "actions_executed_tick": int(self._executed_tick),
            "actions_failed_tick": int(self._failed_tick),
            "released_tick": float(self._released_tick),
        })
