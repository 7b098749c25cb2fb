"""Replay a synthetic scenario through the full SoundSOS monitor."""
from __future__ import annotations

import argparse
from dataclasses import replace

from soundsos.model.infer import load_scorer
from soundsos.simulation.event_player import SCENARIOS, EventPlayer
from soundsos.system.alert_machine import AlertEvent, AlertState
from soundsos.system.monitor import EmergencyMonitor
from soundsos.system.transport import LogTransport
from soundsos.utils.constants import ALERT, MODEL
from soundsos.utils.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run SoundSOS scenario simulations.")
    parser.add_argument("scenario", choices=SCENARIOS.keys(), help="Scenario name")
    parser.add_argument("--model_path", default=MODEL.model_path)
    parser.add_argument("--contact", dest="contacts", action="append", default=["+15550100"])
    parser.add_argument("--auto_send_ms", type=int, default=0, help="Escalation delay (nobody answers)")
    parser.add_argument("--log_level", default="WARNING")
    args = parser.parse_args()
    setup_logging(args.log_level)

    player = EventPlayer(SCENARIOS[args.scenario]())
    resolved: list[AlertEvent] = []

    def record(state: AlertState, event: AlertEvent) -> None:
        if state is AlertState.RESOLVED:
            resolved.append(event)

    monitor = EmergencyMonitor(
        player.capture,
        load_scorer(args.model_path),
        LogTransport(),
        frozenset(args.contacts),
        alert=replace(ALERT, auto_escalation_ms=args.auto_send_ms),
        on_state_change=record,
    )
    monitor.run()
    monitor.machine.wait_idle(timeout=10.0)

    print(f"Scenario: {player.scenario.name}")
    print(f"Event windows: {player.event_windows()}")
    print(f"Alerts resolved: {len(resolved)}")
    for event in resolved:
        report = event.report
        sent = report.success_count if report else 0
        print(f"  alert {event.event_id}: {event.resolution}, confidence {event.confidence:.2f}, sent {sent}")


if __name__ == "__main__":
    main()
