from dataclasses import dataclass, field
from typing import List, Optional
import math


@dataclass(frozen=True)
class ChainParams:
    orderflow_regen_per_tick: float
    outflow_regen_per_tick: float
    gas_cost: float
    execution_surplus: float  # multiplier on post-gas execute amount
    bridging_time: int        # ticks
    inventory_lock_time: int  # ticks


@dataclass(frozen=True)
class ChainSpec:
    name: str
    params: ChainParams
    initial_orderflow_balance: float
    initial_outflow_balance: float
    initial_strategy_balance: float = 0.0


def default_chains() -> List[ChainSpec]:
    return [
        ChainSpec(
            name="A",
            params=ChainParams(
                orderflow_regen_per_tick=0.64,  # high order flow
                outflow_regen_per_tick=0.24,    # low bridging rate
                gas_cost=0.0001,                # low gas
                execution_surplus=1.0005,       # 5 bips
                bridging_time=4,
                inventory_lock_time=4,
            ),
            initial_orderflow_balance=10.0,
            initial_outflow_balance=30.0,
            initial_strategy_balance=10.0,
        ),
        ChainSpec(
            name="B",
            params=ChainParams(
                orderflow_regen_per_tick=0.38,  # medium order flow
                outflow_regen_per_tick=0.4,     # medium bridging rate
                gas_cost=0.0005,                # medium gas
                execution_surplus=1.0003,       # 3 bips
                bridging_time=6,
                inventory_lock_time=6,
            ),
            initial_orderflow_balance=30.0,
            initial_outflow_balance=10.0,
            initial_strategy_balance=0.0,
        ),
        ChainSpec(
            name="C",
            params=ChainParams(
                orderflow_regen_per_tick=0.24,  # low order flow
                outflow_regen_per_tick=0.61,    # high bridging rate
                gas_cost=0.0008,                # high gas
                execution_surplus=1.0009,       # 9 bips
                bridging_time=4,
                inventory_lock_time=8,
            ),
            initial_orderflow_balance=40.0,
            initial_outflow_balance=30.0,
            initial_strategy_balance=0.0,
        ),
    ]


@dataclass
class ScenarioConfig:
    # Network
    chains: List[ChainSpec] = field(default_factory=default_chains)
    pool_cap_multiplier: float = 1.5  # pool cap = multiplier * initial pool balance

    # Run
    iterations: int = 1000
    progress_stride_ticks: int = 100

    # Observability
    metrics_stride: int = 1
    event_log_maxlen: Optional[int] = None

    # Debug
    debug_ledger: bool = False

    def __post_init__(self) -> None:
        self.chains = list(self.chains)
        if not self.chains:
            raise ValueError("scenario needs at least one chain")
        seen = set()
        for spec in self.chains:
            if spec.name in seen:
                raise ValueError(f"duplicate chain name: {spec.name!r}")
            seen.add(spec.name)
            _validate_params(spec.name, spec.params)
            for label in ("initial_orderflow_balance", "initial_outflow_balance", "initial_strategy_balance"):
                value = getattr(spec, label)
                if not math.isfinite(value) or value < 0.0:
                    raise ValueError(f"chain {spec.name!r}: {label} must be a non-negative number")
        if self.pool_cap_multiplier <= 0.0:
            raise ValueError("pool_cap_multiplier must be positive")
        if self.iterations < 1:
            raise ValueError("iterations must be a positive integer")

    def chain_names(self) -> List[str]:
        return [spec.name for spec in self.chains]


def _validate_params(name: str, params: ChainParams) -> None:
    for label in ("orderflow_regen_per_tick", "outflow_regen_per_tick", "gas_cost"):
        value = getattr(params, label)
        if not math.isfinite(value) or value < 0.0:
            raise ValueError(f"chain {name!r}: {label} must be a non-negative number")
    if not math.isfinite(params.execution_surplus) or params.execution_surplus <= 1.0:
        raise ValueError(f"chain {name!r}: execution_surplus must be greater than 1.0")
    for label in ("bridging_time", "inventory_lock_time"):
        value = getattr(params, label)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValueError(f"chain {name!r}: {label} must be a non-negative integer tick count")
