"""
Tests for the tick loop: ordering of regeneration, release, strategy calls
and execution, plus reporting and metrics.
"""

import dataclasses
import logging

import pytest

from chainsim.config import ChainSpec, ScenarioConfig, default_chains
from chainsim.core import Action
from chainsim.engine import SimulationEngine
from chainsim.strategy import ExampleStrategy, IdleStrategy


@pytest.fixture
def engine_factory(cfg):
    def make(strategy=None):
        return SimulationEngine(cfg=cfg, strategy=strategy)
    return make


# =============================================================================
# Settlement timing
# =============================================================================

class TestSettlementTiming:

    def test_simple_bridge_released_after_four_ticks(self, engine_factory, scripted):
        engine = engine_factory(scripted({0: [Action.bridge("A", "B", 2.0)]}))
        engine.step(1)
        a, b = engine.chain("A"), engine.chain("B")
        assert a.strategy_balance == pytest.approx(8.0)
        assert b.ledger.as_tuples()[0][0] == pytest.approx(1.9999)
        assert b.ledger.as_tuples()[0][1] == 4

        engine.step(3)
        assert b.strategy_balance == 0.0
        assert b.ledger.as_tuples()[0][1] == 1

        engine.step(1)
        assert b.strategy_balance == pytest.approx(1.9999)
        assert len(b.ledger) == 0

        engine.step(10)
        assert b.strategy_balance == pytest.approx(1.9999)

    def test_release_event_emitted_once(self, engine_factory, scripted):
        engine = engine_factory(scripted({0: [Action.bridge("A", "B", 2.0)]}))
        engine.step(10)
        released = engine.log.of_type("SETTLEMENT_RELEASED")
        assert len(released) == 1
        assert released[0].tick == 4
        assert released[0].chain_id == "B"
        assert released[0].amount == pytest.approx(1.9999)

    def test_released_funds_visible_to_strategy_same_tick(self, two_chain_specs, scripted):
        specs = list(two_chain_specs)
        fast = dataclasses.replace(specs[0].params, bridging_time=1)
        specs[0] = ChainSpec("A", fast, 10.0, 30.0, 10.0)
        strategy = scripted({
            0: [Action.bridge("A", "B", 2.0)],
            1: [Action.bridge("B", "A", 1.5)],
        })
        engine = SimulationEngine(ScenarioConfig(chains=specs, progress_stride_ticks=0), strategy)
        engine.step(2)

        assert strategy.seen[1].chain("B").strategy_balance == pytest.approx(1.9999)
        assert engine.receipts.receipts[-1].status == "executed"
        assert engine.chain("B").strategy_balance == pytest.approx(1.9999 - 1.5)

    def test_regeneration_precedes_strategy(self, engine_factory, scripted):
        strategy = scripted()
        engine = engine_factory(strategy)
        engine.step(1)
        assert strategy.seen[0].chain("A").orderflow_balance == pytest.approx(10.64)
        assert strategy.seen[0].tick == 0


# =============================================================================
# Tick loop
# =============================================================================

class TestTickLoop:

    def test_strategy_called_once_per_tick(self, engine_factory, scripted):
        strategy = scripted()
        engine = engine_factory(strategy)
        engine.step(7)
        assert [s.tick for s in strategy.seen] == list(range(7))
        assert engine.tick == 7

    def test_pools_never_exceed_caps(self, cfg):
        engine = SimulationEngine(cfg=cfg, strategy=IdleStrategy())
        for _ in range(200):
            engine.step(1)
            for c in engine.chains:
                assert c.orderflow_balance <= c.max_orderflow_balance
                assert c.outflow_balance <= c.max_outflow_balance

    def test_failures_do_not_stop_the_run(self, engine_factory, scripted):
        engine = engine_factory(scripted({
            0: [Action.bridge("A", "A", 1.0), Action.bridge("A", "Z", 1.0), Action.bridge("A", "B", 1.0)],
        }))
        engine.step(3)
        statuses = [r.status for r in engine.receipts.receipts]
        assert statuses == ["failed", "failed", "executed"]
        assert [e.meta["reason"] for e in engine.log.of_type("ACTION_FAILED")] == ["same_chain", "unknown_chain"]
        assert engine.tick == 3

    def test_plain_function_strategy(self, cfg):
        calls = []

        def policy(snapshot):
            calls.append(snapshot.tick)
            if snapshot.tick == 0:
                return [Action.execute("A", "B", 1.0)]
            return None

        engine = SimulationEngine(cfg=cfg, strategy=policy)
        engine.step(2)
        assert calls == [0, 1]
        assert engine.receipts.count("executed") == 1

    def test_no_strategy_is_idle(self, cfg):
        engine = SimulationEngine(cfg=cfg)
        engine.step(3)
        assert engine.receipts.receipts == []

    def test_non_action_output_raises(self, cfg):
        engine = SimulationEngine(cfg=cfg, strategy=lambda snapshot: ["bridge A B 1"])
        with pytest.raises(TypeError):
            engine.step(1)

    def test_strategy_without_on_tick_rejected(self, cfg):
        with pytest.raises(TypeError):
            SimulationEngine(cfg=cfg, strategy=object())


# =============================================================================
# Run and reporting
# =============================================================================

class TestRun:

    def test_run_reports_initial_and_final_state(self, engine_factory, caplog):
        engine = engine_factory(IdleStrategy())
        with caplog.at_level(logging.INFO, logger="chainsim.engine"):
            summary = engine.run(5)
        assert summary.ticks == 5
        assert summary.initial_total == pytest.approx(10.0)
        assert summary.final_total == pytest.approx(10.0)
        assert summary.pnl == pytest.approx(0.0)
        reports = engine.log.of_type("STATE_REPORTED")
        assert [e.meta["label"] for e in reports] == ["initial", "final"]
        assert "Starting simulation.." in caplog.text
        assert "..finished." in caplog.text
        assert "Chain [A] balance" in caplog.text

    def test_run_uses_configured_iterations(self, engine_factory):
        engine = engine_factory()
        assert engine.run().ticks == 10
        assert engine.tick == 10

    @pytest.mark.parametrize("iterations", [0, -3])
    def test_run_requires_positive_iterations(self, engine_factory, iterations):
        with pytest.raises(ValueError):
            engine_factory().run(iterations)

    def test_report_counts_locked_value(self, engine_factory, scripted):
        engine = engine_factory(scripted({0: [Action.bridge("A", "B", 2.0)]}))
        engine.step(1)
        report = engine.report_state()
        assert report["A"] == {"balance": pytest.approx(8.0), "locked": 0.0}
        assert report["B"]["locked"] == pytest.approx(1.9999)
        assert report["total"] == pytest.approx(9.9999)

    def test_execute_surplus_grows_total(self, engine_factory, scripted):
        engine = engine_factory(scripted({0: [Action.execute("A", "B", 5.0)]}))
        summary = engine.run(6)
        assert summary.actions_executed == 1
        assert summary.final_total == pytest.approx(5.0 + (5.0 - 0.0001) * 1.0005)
        assert summary.pnl > 0

    def test_example_strategy_on_default_scenario(self):
        engine = SimulationEngine(ScenarioConfig(progress_stride_ticks=0), ExampleStrategy())
        summary = engine.run(1000)
        assert engine.tick == 1000
        assert summary.actions_executed > 0
        assert summary.initial_total == pytest.approx(10.0)
        for c in engine.chains:
            assert c.strategy_balance >= 0.0


# =============================================================================
# Metrics
# =============================================================================

class TestMetrics:

    def test_rows_per_tick(self, engine_factory):
        engine = engine_factory(IdleStrategy())
        engine.step(4)
        net = engine.metrics.network_df()
        assert list(net["tick"]) == [0, 1, 2, 3, 4]
        chain_rows = engine.metrics.chain_df()
        assert len(chain_rows) == 10
        assert set(chain_rows["chain"]) == {"A", "B"}

    def test_metrics_stride(self, two_chain_specs):
        cfg = ScenarioConfig(chains=two_chain_specs, metrics_stride=3, progress_stride_ticks=0)
        engine = SimulationEngine(cfg)
        engine.step(7)
        assert list(engine.metrics.network_df()["tick"]) == [0, 3, 6]

    def test_value_curve_drawdown(self, engine_factory, scripted):
        engine = engine_factory(scripted({0: [Action.bridge("A", "B", 2.0)]}))
        engine.step(2)
        curve = engine.metrics.value_curve()
        assert list(curve.columns) == ["tick", "total_value", "pct_change", "drawdown"]
        assert curve["drawdown"].iloc[0] == 0.0
        assert curve["drawdown"].iloc[-1] == pytest.approx(-0.0001 / 10.0)

    def test_action_counters(self, engine_factory, scripted):
        engine = engine_factory(scripted({1: [Action.bridge("A", "B", 1.0), Action.bridge("A", "B", 100.0)]}))
        engine.step(2)
        row = engine.metrics.network_df().iloc[-1]
        assert row["actions_executed_tick"] == 1
        assert row["actions_failed_tick"] == 1


# =============================================================================
# Configuration
# =============================================================================

class TestConfig:

    def test_default_scenario_has_reference_chains(self):
        cfg = ScenarioConfig()
        assert cfg.chain_names() == ["A", "B", "C"]
        assert cfg.iterations == 1000

    def test_duplicate_names_rejected(self):
        chains = default_chains()
        with pytest.raises(ValueError):
            ScenarioConfig(chains=chains + [chains[0]])

    def test_empty_scenario_rejected(self):
        with pytest.raises(ValueError):
            ScenarioConfig(chains=[])

    def test_negative_lock_time_rejected(self):
        spec = default_chains()[0]
        bad = dataclasses.replace(spec.params, bridging_time=-1)
        with pytest.raises(ValueError):
            ScenarioConfig(chains=[ChainSpec("A", bad, 1.0, 1.0, 1.0)])

    @pytest.mark.parametrize("surplus", [1.0, 0.5, float("nan")])
    def test_execution_surplus_must_exceed_one(self, surplus):
        spec = default_chains()[0]
        bad = dataclasses.replace(spec.params, execution_surplus=surplus)
        with pytest.raises(ValueError):
            ScenarioConfig(chains=[ChainSpec("A", bad, 1.0, 1.0, 1.0)])

    @pytest.mark.parametrize("iterations", [0, -3])
    def test_iterations_must_be_positive(self, iterations):
        with pytest.raises(ValueError):
            ScenarioConfig(iterations=iterations)

    def test_config_is_not_shared_with_chains(self, cfg):

        engine = SimulationEngine(cfg=cfg)
        engine.chain("A").strategy_balance = 0.0
        assert cfg.chains[0].initial_strategy_balance == 10.0
