#!/usr/bin/env python3
"""
Switching Demo

Drives the demo substation through an outage sequence: earthing a feeder
under interlocking, injecting a persistent fault on a DAR-protected feeder
and reporting the power flow estimate before and after.
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

from network import DeviceKind, SwitchState, build_demo_substation
from simulation import FaultSeverity, SwitchgearSimulation, default_config, load_config


def configure_logging(level: str, log_dir: str = None):
    logger.remove()
    logger.add(sys.stderr, level=level, colorize=True,
               format="<green>{time:HH:mm:ss}</green> | <level>{level}</level> | {message}")
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        logger.add(f"{log_dir}/switching_demo_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log", level="DEBUG")


def report_power_flow(sim: SwitchgearSimulation, title: str):
    estimate = sim.estimate_power_flow()
    logger.info(f"--- {title} ---")
    logger.info(f"Energized loads: {estimate.energized_loads}")
    logger.info(f"Totals: P={estimate.totals.p_mw:.1f} MW, Q={estimate.totals.q_mvar:.1f} Mvar, "
                f"S={estimate.totals.s_mva:.1f} MVA")
    logger.info(f"Max loading: {estimate.max_loading_pct:.1f}%")
    for bus_group, state in sorted(estimate.bus_voltage_state.items()):
        logger.info(f"  {bus_group}: {state.value}")
    return estimate


def run_demo(sim: SwitchgearSimulation, output_dir: str):
    report_power_flow(sim, "Initial state")

    # Earthing feeder 2: the interlock refuses ES3 while DS3 is closed
    sim.schedule_command("ES3", DeviceKind.EARTH_SWITCH, SwitchState.CLOSED)
    sim.schedule_command("CB3", DeviceKind.CIRCUIT_BREAKER, SwitchState.OPEN)
    sim.advance(1.0)
    sim.schedule_command("DS3", DeviceKind.DISCONNECTOR, SwitchState.OPEN)
    sim.advance(7.0)
    sim.schedule_command("ES3", DeviceKind.EARTH_SWITCH, SwitchState.CLOSED)
    sim.advance(7.0)
    logger.info(f"Grounded devices: {sorted(sim.grounding.grounded_devices)}")

    # Persistent fault on feeder 1: DAR twice, then lockout and auto-isolation
    fault_id = sim.inject_fault("c6", position=(420.0, 180.0), severity=FaultSeverity.SEVERE, persistent=True)
    sim.advance(10.0)
    logger.info(f"Active faults: {[f.id for f in sim.protection.active_faults()]}")
    logger.info(f"Devices blocked by faults: {sorted(sim.protection.fault_blocked_devices())}")

    report_power_flow(sim, "After fault")

    sim.clear_fault(fault_id)
    sim.reset_condition("CB2")
    sim.run_until_idle()

    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)
    events_file = output / "switching_events.csv"
    sim.events.to_dataframe().to_csv(events_file, index=False)
    flow_file = output / "power_flow.csv"
    sim.estimate_power_flow().to_dataframe().to_csv(flow_file, index=False)
    project_file = sim.save_project(output / "demo_project.json", name="Demo substation")

    summary = sim.get_summary()
    logger.info(f"Summary: {json.dumps(summary, indent=2)}")
    logger.info(f"Event log written to {events_file}, power flow to {flow_file}, project to {project_file}")
    return summary


def main():
    parser = argparse.ArgumentParser(description='Substation switching simulation demo')
    parser.add_argument('--config', type=str, help='Configuration file path (JSON overrides)')
    parser.add_argument('--project', type=str, help='Project file to load instead of the demo substation')
    parser.add_argument('--seed', type=int, default=7, help='Random seed')
    parser.add_argument('--output', type=str, default='outputs', help='Output directory')
    parser.add_argument('--log-level', type=str, default='INFO', help='Console log level')
    parser.add_argument('--log-dir', type=str, help='Directory for a DEBUG log file')

    args = parser.parse_args()
    configure_logging(args.log_level, args.log_dir)

    config = load_config(args.config) if args.config else default_config()
    config.seed = args.seed

    if args.project:
        sim = SwitchgearSimulation.from_project(args.project, config)
    else:
        network, rules = build_demo_substation()
        sim = SwitchgearSimulation(network, rules, config)

    try:
        run_demo(sim, args.output)
    except Exception as e:
        logger.error(f"Demo failed: {e}")
        return 1

    logger.success("Switching demo completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
