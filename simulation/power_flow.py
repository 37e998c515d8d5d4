"""
Power Flow Estimator

Approximate telemetry for the mimic: every energized load is fed along all
shortest conducting paths back to a live source, its demand split evenly
between them. This is a path-splitting heuristic, not a load-flow solver.
"""

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

import networkx as nx
import numpy as np
import pandas as pd
from loguru import logger

from network.components import Connection, Device, DeviceKind, PowerProfile, PowerRole
from .conduction import is_conducting
from .config import PowerFlowConfig

_SUPER_SOURCE = "__super_source__"


class BusVoltageState(Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"


@dataclass
class PowerTotals:
    p_mw: float = 0.0
    q_mvar: float = 0.0
    s_mva: float = 0.0


@dataclass
class PowerFlowEstimate:
    """Loading of every connection and voltage class of every bus group"""
    edge_loading_pct: Dict[str, float] = field(default_factory=dict)
    overloaded_edges: Set[str] = field(default_factory=set)
    bus_voltage_state: Dict[str, BusVoltageState] = field(default_factory=dict)
    totals: PowerTotals = field(default_factory=PowerTotals)
    edge_flows: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    energized_loads: List[str] = field(default_factory=list)

    @property
    def max_loading_pct(self) -> float:
        return max(self.edge_loading_pct.values(), default=0.0)

    def to_dataframe(self) -> pd.DataFrame:
        """Per-connection loading table"""
        rows = []
        for conn_id, loading in self.edge_loading_pct.items():
            p, q = self.edge_flows.get(conn_id, (0.0, 0.0))
            rows.append({
                'connection_id': conn_id,
                'p_mw': p,
                'q_mvar': q,
                'loading_percent': loading,
                'overloaded': conn_id in self.overloaded_edges,
            })
        return pd.DataFrame(rows, columns=['connection_id', 'p_mw', 'q_mvar', 'loading_percent', 'overloaded'])


def power_profile(device: Device, config: PowerFlowConfig) -> PowerProfile:
    """Explicit profile, or the default for the device kind"""
    if device.power is not None:
        return device.power
    if device.kind is DeviceKind.SOURCE:
        return PowerProfile(PowerRole.SOURCE, config.source_p_mw, config.source_q_mvar)
    if device.kind is DeviceKind.LOAD:
        return PowerProfile(PowerRole.LOAD, config.load_p_mw, config.load_q_mvar)
    return PowerProfile()


def build_conducting_graph(devices: Iterable[Device], connections: Iterable[Connection]) -> nx.MultiGraph:
    """Multigraph of connections whose two endpoints both conduct"""
    by_id = {dev.id: dev for dev in devices}
    graph = nx.MultiGraph()
    for conn in connections:
        a, b = by_id.get(conn.a), by_id.get(conn.b)
        if a is None or b is None:
            continue
        if is_conducting(a) and is_conducting(b):
            graph.add_edge(conn.a, conn.b, key=conn.id)
    return graph


def _shortest_edge_paths(graph: nx.MultiGraph, load_id: str) -> List[Tuple[str, ...]]:
    """All hop-shortest connection paths from a load to the super source"""
    edge_paths = []
    for node_path in nx.all_shortest_paths(graph, load_id, _SUPER_SOURCE):
        hops = node_path[:-1]  # drop the super source
        parallel = [list(graph[u][v].keys()) for u, v in zip(hops, hops[1:])]
        edge_paths.extend(itertools.product(*parallel))
    return edge_paths


def _reactive_contribution(profile: PowerProfile) -> float:
    q = 0.0
    if profile.role is PowerRole.LOAD:
        q += profile.q_mvar
    if profile.role is PowerRole.SOURCE:
        q -= profile.q_mvar
    if profile.device_type == "shunt_reactor":
        q += abs(profile.q_mvar)
    if profile.device_type == "cap_bank":
        q -= abs(profile.q_mvar)
    return q


def classify_voltage(net_q_mvar: float, config: PowerFlowConfig) -> BusVoltageState:
    if net_q_mvar > config.low_voltage_mvar:
        return BusVoltageState.LOW
    if net_q_mvar < config.high_voltage_mvar:
        return BusVoltageState.HIGH
    return BusVoltageState.NORMAL


def estimate_power_flow(devices: Iterable[Device], connections: Iterable[Connection],
                        config: Optional[PowerFlowConfig] = None) -> PowerFlowEstimate:
    """
    Estimate connection loading and bus-group voltage state

    Args:
        devices: All devices of the network
        connections: All connections of the network
        config: Ratings, default powers and thresholds

    Returns:
        Loading per connection, overloaded connections, bus voltage
        classes and system totals
    """
    config = config or PowerFlowConfig()
    devices = list(devices)
    connections = list(connections)
    profiles = {dev.id: power_profile(dev, config) for dev in devices}

    graph = build_conducting_graph(devices, connections)

    live_sources = [
        dev.id for dev in devices
        if profiles[dev.id].role is PowerRole.SOURCE and is_conducting(dev) and dev.id in graph
    ]
    for source_id in live_sources:
        graph.add_edge(source_id, _SUPER_SOURCE, key=f"{_SUPER_SOURCE}:{source_id}")

    edge_p: Dict[str, float] = {}
    edge_q: Dict[str, float] = {}
    energized_loads = []

    for dev in devices:
        profile = profiles[dev.id]
        if profile.role is not PowerRole.LOAD or dev.id not in graph:
            continue
        if not live_sources or not nx.has_path(graph, dev.id, _SUPER_SOURCE):
            continue
        energized_loads.append(dev.id)

        paths = _shortest_edge_paths(graph, dev.id)
        split = 1.0 / len(paths)
        for path in paths:
            for conn_id in path:
                edge_p[conn_id] = edge_p.get(conn_id, 0.0) + profile.p_mw * split
                edge_q[conn_id] = edge_q.get(conn_id, 0.0) + profile.q_mvar * split

    result = PowerFlowEstimate(energized_loads=energized_loads)

    for conn in connections:
        p = edge_p.get(conn.id, 0.0)
        q = edge_q.get(conn.id, 0.0)
        s = float(np.hypot(p, q))
        rating = conn.rating_mva if conn.rating_mva is not None else config.default_rating_mva
        loading = (s / rating) * 100.0 if rating > 0 else 0.0
        result.edge_flows[conn.id] = (p, q)
        result.edge_loading_pct[conn.id] = loading
        if loading > config.overload_pct:
            result.overloaded_edges.add(conn.id)

    # reactive balance per bus group
    bus_groups_of: Dict[str, Set[str]] = {}
    for conn in connections:
        bus_groups_of.setdefault(conn.a, set()).add(conn.bus_group)
        bus_groups_of.setdefault(conn.b, set()).add(conn.bus_group)

    balance: Dict[str, float] = {}
    for dev in devices:
        groups = bus_groups_of.get(dev.id)
        if not groups:
            continue
        profile = profiles[dev.id]
        if profile.device_type and dev.id not in graph:
            continue  # compensation out of service
        share = _reactive_contribution(profile) / len(groups)
        for group in groups:
            balance[group] = balance.get(group, 0.0) + share

    for conn in connections:
        result.bus_voltage_state[conn.bus_group] = classify_voltage(balance.get(conn.bus_group, 0.0), config)

    total_p = sum(profiles[load_id].p_mw for load_id in energized_loads)
    total_q = sum(profiles[load_id].q_mvar for load_id in energized_loads)
    for dev in devices:
        profile = profiles[dev.id]
        if dev.id not in graph:
            continue
        if profile.device_type == "shunt_reactor":
            total_q += abs(profile.q_mvar)
        elif profile.device_type == "cap_bank":
            total_q -= abs(profile.q_mvar)
    result.totals = PowerTotals(p_mw=total_p, q_mvar=total_q, s_mva=float(np.hypot(total_p, total_q)))

    if result.overloaded_edges:
        logger.warning(f"{len(result.overloaded_edges)} overloaded connection(s): {sorted(result.overloaded_edges)}")

    return result
