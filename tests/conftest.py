"""
Shared fixtures for the chain simulation tests.
"""

from typing import Dict, List

import pytest

from chainsim.config import ChainParams, ChainSpec, ScenarioConfig
from chainsim.core import Chain
from chainsim.executor import ActionExecutor


class ScriptedStrategy:
    """Replays a fixed tick -> actions plan and records every snapshot it saw."""

    def __init__(self, plan: Dict[int, List] = None):
        self.plan = plan or {}
        self.seen = []

    def on_tick(self, snapshot):
        self.seen.append(snapshot)
        return list(self.plan.get(snapshot.tick, []))


@pytest.fixture
def params_a():
    return ChainParams(
        orderflow_regen_per_tick=0.64,
        outflow_regen_per_tick=0.24,
        gas_cost=0.0001,
        execution_surplus=1.0005,
        bridging_time=4,
        inventory_lock_time=4,
    )


@pytest.fixture
def params_b():
    return ChainParams(
        orderflow_regen_per_tick=0.38,
        outflow_regen_per_tick=0.4,
        gas_cost=0.0005,
        execution_surplus=1.0003,
        bridging_time=6,
        inventory_lock_time=6,
    )


@pytest.fixture
def two_chain_specs(params_a, params_b):
    return [
        ChainSpec("A", params_a, initial_orderflow_balance=10.0,
                  initial_outflow_balance=30.0, initial_strategy_balance=10.0),
        ChainSpec("B", params_b, initial_orderflow_balance=30.0,
                  initial_outflow_balance=30.0, initial_strategy_balance=0.0),
    ]


@pytest.fixture
def cfg(two_chain_specs):
    return ScenarioConfig(chains=two_chain_specs, iterations=10, progress_stride_ticks=0)


@pytest.fixture
def chains(two_chain_specs):
    return [Chain.from_spec(spec) for spec in two_chain_specs]


@pytest.fixture
def executor(chains):
    return ActionExecutor(chains)


@pytest.fixture
def scripted():
    return ScriptedStrategy
