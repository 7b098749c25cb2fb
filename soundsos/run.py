from __future__ import annotations

import argparse
import sys
import time
from dataclasses import replace
from typing import List, Optional

from soundsos.audio.capture import MicCapture, WavCapture
from soundsos.model.infer import load_scorer
from soundsos.system.alert_machine import AlertEvent, AlertState
from soundsos.system.location import StaticLocationProvider
from soundsos.system.monitor import EmergencyMonitor
from soundsos.system.transport import LogTransport, Transport, TwilioSmsTransport
from soundsos.utils.constants import ALERT, AUDIO, MODEL
from soundsos.utils.log import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Listen for emergency sounds and alert your contacts.")
    parser.add_argument("--model_path", default=MODEL.model_path, help="Path to TFLite (or Keras) model")
    parser.add_argument(
        "--contact",
        dest="contacts",
        action="append",
        default=[],
        help="Phone number to alert (repeatable)",
    )
    parser.add_argument("--lat", type=float, default=None, help="Fixed latitude for the alert link")
    parser.add_argument("--lon", type=float, default=None, help="Fixed longitude for the alert link")
    parser.add_argument("--transport", choices=("log", "twilio"), default="log")
    parser.add_argument("--threshold", type=float, default=ALERT.confidence_threshold)
    parser.add_argument("--smoothing_window", type=int, default=ALERT.smoothing_window)
    parser.add_argument("--auto_send_ms", type=int, default=ALERT.auto_escalation_ms)
    parser.add_argument("--device", type=int, default=None, help="Input device index")
    parser.add_argument("--wav", default=None, help="Replay a WAV file instead of the microphone")
    parser.add_argument("--headless", action="store_true", help="Do not read y/n answers from stdin")
    parser.add_argument("--log_level", default="INFO")
    return parser


def build_transport(name: str) -> Transport:
    if name == "twilio":
        return TwilioSmsTransport.from_env()
    return LogTransport()


def show_state(state: AlertState, event: AlertEvent, auto_send_s: float = ALERT.auto_escalation_ms / 1000) -> None:
    if state is AlertState.PENDING_CONFIRMATION:
        print(
            f"\n🚨 Emergency detected! Send alert to {len(event.recipients)} contact(s)? [y/n] "
            f"(auto-sends in {auto_send_s:.0f}s)"
        )
    elif state is AlertState.RESOLVED and event.resolution == "cancelled":
        print("Alert cancelled.")
    elif state is AlertState.RESOLVED and event.report is not None:
        report = event.report
        if report.attempted == 0:
            print("No emergency contacts saved. Add contacts with --contact.")
        if report.success_count:
            print(f"🚨 Emergency alerts sent to {report.success_count} contact(s)!")
        if report.failure_count:
            print(f"Failed to send to {report.failure_count} contact(s)")


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    alert = replace(
        ALERT,
        confidence_threshold=args.threshold,
        smoothing_window=args.smoothing_window,
        auto_escalation_ms=args.auto_send_ms,
    )
    location = None
    if args.lat is not None and args.lon is not None:
        location = StaticLocationProvider(args.lat, args.lon)

    if args.wav:
        capture_factory = lambda: WavCapture(args.wav, AUDIO, realtime=True)
    else:
        capture_factory = lambda: MicCapture(AUDIO, device=args.device)

    monitor = EmergencyMonitor(
        capture_factory,
        load_scorer(args.model_path),
        build_transport(args.transport),
        frozenset(args.contacts),
        location_provider=location,
        alert=alert,
        on_state_change=lambda state, event: show_state(state, event, alert.auto_escalation_ms / 1000),
    )
    monitor.start()
    print("Listening... answer y/n to a prompt, q to quit, Ctrl+C to stop")
    try:
        if args.headless:
            while monitor.is_listening:
                time.sleep(0.5)
        else:
            for line in sys.stdin:
                answer = line.strip().lower()
                if answer in {"y", "yes"}:
                    monitor.confirm()
                elif answer in {"n", "no"}:
                    monitor.cancel()
                elif answer in {"q", "quit"}:
                    break
    except KeyboardInterrupt:
        pass
    finally:
        monitor.stop()
        monitor.machine.wait_idle(timeout=ALERT.location_timeout_s + 5.0)


if __name__ == "__main__":
    main()
