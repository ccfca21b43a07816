import json
import time
import streamlit as st
import pandas as pd

from chainsim.config import ScenarioConfig
from chainsim.engine import SimulationEngine
from chainsim.strategy import STRATEGIES

st.set_page_config(page_title="Cross-Chain Liquidity Simulator", layout="wide")


def get_engine() -> SimulationEngine:
    if "engine" not in st.session_state:
        cfg = ScenarioConfig()
        st.session_state.cfg = cfg
        st.session_state.strategy_name = "example"
        st.session_state.engine = SimulationEngine(cfg=cfg, strategy=STRATEGIES["example"]())
    return st.session_state.engine


def reset_engine(reset_config: bool = False) -> None:
    if reset_config:
        cfg = ScenarioConfig()
        st.session_state.cfg = cfg
    else:
        cfg = st.session_state.get("cfg", ScenarioConfig())
    name = st.session_state.get("strategy_name", "example")
    st.session_state.engine = SimulationEngine(cfg=cfg, strategy=STRATEGIES[name]())


engine = get_engine()

st.title("Cross-Chain Liquidity Simulator")
st.caption("Strategy balances move between chains by bridging and order execution; credits settle after a lock.")

def _fmt_duration(seconds: float) -> str:
    if seconds < 0:
        seconds = 0.0
    mins = int(seconds // 60)
    secs = seconds - (mins * 60)
    return f"{mins}m {secs:0.1f}s"

def _fmt(value: float) -> str:
    return f"{float(value):,.4f}"

def _render_kpi_grid(kpis, columns: int = 5) -> None:
    for idx in range(0, len(kpis), columns):
        row = kpis[idx: idx + columns]
        cols = st.columns(columns)
        for col, (label, value) in zip(cols, row):
            col.metric(label, value)

def _format_table_numbers(df: pd.DataFrame) -> pd.DataFrame:
    formatted = df.copy()
    numeric_cols = formatted.select_dtypes(include=["number"]).columns
    if len(numeric_cols) == 0:
        return formatted
    formatted[numeric_cols] = formatted[numeric_cols].apply(
        lambda col: col.map(lambda value: f"{value:,.4f}" if pd.notnull(value) else "")
    )
    return formatted

def _format_event_meta(meta) -> str:
    if meta is None:
        return ""
    if isinstance(meta, str):
        return meta
    try:
        return json.dumps(meta, sort_keys=True)
    except TypeError:
        return str(meta)


with st.sidebar:
    st.header("Sim Controls")

    st.subheader("Strategy")
    names = sorted(STRATEGIES)
    current = st.session_state.get("strategy_name", "example")
    choice = st.selectbox("Policy", names, index=names.index(current) if current in names else 0)
    if choice != current:
        st.session_state.strategy_name = choice
        reset_engine()
        engine = st.session_state.engine
    st.caption("Changing the policy restarts the simulation at tick 0.")

    st.subheader("Run")
    if st.button("Restart simulation"):
        reset_engine(reset_config=True)
        engine = st.session_state.engine
        st.session_state.run_progress = 0.0
        st.session_state.run_progress_label = "Idle"

    run_ticks = st.slider("Ticks to run", min_value=1, max_value=2000, value=100)
    c3, c4 = st.columns(2)
    run_one = c3.button("Step 1 tick")
    run_many = c4.button("Run N ticks")
    progress_label = st.session_state.get("run_progress_label", "Idle")
    progress_value = float(st.session_state.get("run_progress", 0.0))
    progress_bar = st.progress(progress_value, text=progress_label)
    if run_one:
        progress_bar.progress(0.0, text="Run progress: 0%")
        start_ts = time.time()
        engine.step(1)
        elapsed = time.time() - start_ts
        progress_bar.progress(1.0, text=f"Run progress: 100% ({_fmt_duration(elapsed)})")
        st.session_state.run_progress = 1.0
        st.session_state.run_progress_label = f"Run progress: 100% ({_fmt_duration(elapsed)})"
    if run_many:
        total = int(run_ticks)
        if total > 0:
            start_ts = time.time()
            for idx in range(total):
                engine.step(1)
                progress = (idx + 1) / total
                progress_bar.progress(progress, text=f"Run progress: {progress:.0%}")
            elapsed = time.time() - start_ts
            st.session_state.run_progress = 1.0
            st.session_state.run_progress_label = f"Run progress: 100% ({_fmt_duration(elapsed)})"
            progress_bar.progress(1.0, text=st.session_state.run_progress_label)
    st.caption(f"Current tick: {engine.tick}")

    st.subheader("Chain Parameters")
    params_df = pd.DataFrame([
        {"chain": spec.name, **spec.params.__dict__,
         "orderflow_0": spec.initial_orderflow_balance,
         "outflow_0": spec.initial_outflow_balance,
         "strategy_0": spec.initial_strategy_balance}
        for spec in engine.cfg.chains
    ])
    st.dataframe(params_df.set_index("chain").T, use_container_width=True)

tab_network, tab_chains, tab_actions, tab_log = st.tabs(["Network", "Chains", "Actions", "Event Log"])

net_df = engine.metrics.network_df()
chain_df = engine.metrics.chain_df()

with tab_network:
    if net_df.empty:
        st.info("No metrics yet. Run ticks.")
    else:
        latest = net_df.iloc[-1].to_dict()
        initial_total = float(net_df.iloc[0]["total_value"])
        kpis = [
            ("Tick", str(int(latest["tick"]))),
            ("Total value", _fmt(latest["total_value"])),
            ("Spendable", _fmt(latest["strategy_total"])),
            ("Locked", _fmt(latest["locked_total"])),
            ("PnL", _fmt(latest["total_value"] - initial_total)),
            ("Actions executed", str(engine.receipts.count("executed"))),
            ("Actions failed", str(engine.receipts.count("failed"))),
        ]
        _render_kpi_grid(kpis, columns=4)

        st.subheader("Total Value (spendable + locked)")
        st.line_chart(net_df, x="tick", y=["total_value", "strategy_total", "locked_total"])

        st.subheader("Drawdown from peak")
        curve = engine.metrics.value_curve()
        st.line_chart(curve, x="tick", y=["drawdown"])

        st.subheader("Actions per tick")
        st.line_chart(net_df, x="tick", y=["actions_executed_tick", "actions_failed_tick"])

with tab_chains:
    if chain_df.empty:
        st.info("No chain rows yet.")
    else:
        latest_tick = chain_df["tick"].max()
        cur = chain_df[chain_df["tick"] == latest_tick].drop(columns=["tick"]).set_index("chain")
        st.dataframe(_format_table_numbers(cur), use_container_width=True)

        sel = st.selectbox("Select chain", engine.cfg.chain_names())
        c = engine.chain(sel)
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Strategy balance", _fmt(c.strategy_balance))
        c2.metric("Locked", _fmt(c.locked_total()))
        c3.metric("Orderflow pool", f"{_fmt(c.orderflow_balance)} / {_fmt(c.max_orderflow_balance)}")
        c4.metric("Outflow pool", f"{_fmt(c.outflow_balance)} / {_fmt(c.max_outflow_balance)}")

        history = chain_df[chain_df["chain"] == sel]
        st.line_chart(history, x="tick", y=["strategy_balance", "locked"])
        st.line_chart(history, x="tick", y=["orderflow_balance", "outflow_balance"])

        ledger = pd.DataFrame(
            [{"amount": amount, "remaining_ticks": ticks} for amount, ticks in c.ledger.as_tuples()]
        )
        st.write("**Locked settlements**")
        if ledger.empty:
            st.caption("(empty)")
        else:
            st.dataframe(ledger, use_container_width=True)

with tab_actions:
    st.subheader("Receipts (latest 300)")
    receipts = engine.receipts.tail(300)
    if not receipts:
        st.info("No actions yet.")
    else:
        df = pd.DataFrame([r.to_dict() for r in receipts]).iloc[::-1]
        st.dataframe(df, use_container_width=True)
        reasons = engine.receipts.by_reason()
        if reasons:
            st.write("**Failures by reason**")
            st.bar_chart(pd.Series(reasons, name="count"))

with tab_log:
    st.subheader("Event Log (latest 300)")
    tail = engine.log.tail(300)
    if not tail:
        st.info("No events yet.")
    else:
        df = pd.DataFrame([e.__dict__ for e in tail])
        df["_order"] = range(len(df))
        df = df.sort_values(["tick", "_order"], ascending=False).drop(columns="_order")
        if "meta" in df.columns:
            df["meta"] = df["meta"].apply(_format_event_meta)
        st.dataframe(df, use_container_width=True)
