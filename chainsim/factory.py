from __future__ import annotations
from typing import List

from .config import ScenarioConfig
from .core import Chain

class ChainFactory:
    def __init__(self, cfg: ScenarioConfig) -> None:
        self.cfg = cfg

    def build_chains(self) -> List[Chain]:
        """Fresh chain state for every spec, in configuration order."""
        chains: List[Chain] = []
        for spec in self.cfg.chains:
            chain = Chain.from_spec(spec, cap_multiplier=self.cfg.pool_cap_multiplier)
            chain.debug_ledger = self.cfg.debug_ledger
            chains.append(chain)
        return chains
