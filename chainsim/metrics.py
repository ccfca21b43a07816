from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, List
import numpy as np
import pandas as pd

@dataclass
class MetricsStore:
    network_rows: List[Dict[str, Any]] = field(default_factory=list)
    chain_rows: List[Dict[str, Any]] = field(default_factory=list)

    def add_network(self, row: Dict[str, Any]) -> None:
        self.network_rows.append(row)

    def add_chain_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.chain_rows.extend(rows)

    def network_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.network_rows)

    def chain_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.chain_rows)

    def value_curve(self) -> pd.DataFrame:
        """Total value per tick with relative change and drawdown from the running peak."""
        df = self.network_df()
        if df.empty:
            return pd.DataFrame(columns=["tick", "total_value", "pct_change", "drawdown"])
        df = df[["tick", "total_value"]].copy()
        values = df["total_value"].to_numpy(dtype=float)
        peak = np.maximum.accumulate(values)
        df["pct_change"] = df["total_value"].pct_change().fillna(0.0)
        df["drawdown"] = np.where(peak > 0.0, (values - peak) / np.where(peak > 0.0, peak, 1.0), 0.0)
        return df
