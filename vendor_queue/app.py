from __future__ import annotations

# Single entrypoint.
#
#     python -m vendor_queue.app run --num-vendors N --arrival-rate LAMBDA
#
# starts a complete local system. The other subcommands start one component
# each, and `estimate` runs the wait-time model offline (no broker needed).

import argparse
from datetime import datetime, timedelta, timezone


def main() -> None:
    parser = argparse.ArgumentParser(description="Vendor Queue System (MQTT) - main entrypoint")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_mqtt_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--mqtt-host", default="127.0.0.1")
        p.add_argument("--mqtt-port", type=int, default=1883)
        p.add_argument("--namespace", default="vendorqueue/v1")

    # ---- Normal operation: one command ----
    p_run = sub.add_parser("run", help="Start server + one counter per vendor + generator")
    add_mqtt_args(p_run)
    p_run.add_argument("--num-vendors", type=int, required=True)
    p_run.add_argument("--arrival-rate", type=float, required=True, help="λ customers/second")
    p_run.add_argument("--seed", type=int, default=None)
    p_run.add_argument("--mean-service-seconds", type=float, default=2.0)
    p_run.add_argument("--leave-probability", type=float, default=0.0)

    # ---- Single components ----
    p_srv = sub.add_parser("server", help="Start the queue server only")
    add_mqtt_args(p_srv)
    p_srv.add_argument("--vendors", default=None, help="JSON file with vendor profiles")
    p_srv.add_argument("--demo-vendors", type=int, default=1)

    p_cnt = sub.add_parser("counter", help="Start a single service counter for a vendor")
    add_mqtt_args(p_cnt)
    p_cnt.add_argument("--vendor-id", required=True)
    p_cnt.add_argument("--counter-id", default="1")
    p_cnt.add_argument("--mean-service-seconds", type=float, default=2.0)

    p_cust = sub.add_parser("customer", help="Send one customer join (or leave) request")
    add_mqtt_args(p_cust)
    p_cust.add_argument("--customer-id", required=True)
    p_cust.add_argument("--vendor-id")
    p_cust.add_argument("--leave", metavar="ENTRY_ID")

    p_est = sub.add_parser("estimate", help="Print the wait-time estimate for a position (offline)")
    p_est.add_argument("--position", type=int, required=True)
    p_est.add_argument("--concurrency", type=int, default=1, help="max concurrent appointments")
    p_est.add_argument("--average-service-duration", type=float, default=30.0, help="minutes")
    p_est.add_argument(
        "--sample-minutes",
        type=float,
        action="append",
        default=[],
        help="observed join-to-served minutes of a recent customer (repeatable, newest first)",
    )

    args = parser.parse_args()

    if args.cmd == "run":
        from .run_all import main as run

        run_args = [
            *_mqtt_argv(args),
            "--num-vendors",
            str(args.num_vendors),
            "--arrival-rate",
            str(args.arrival_rate),
            "--mean-service-seconds",
            str(args.mean_service_seconds),
            "--leave-probability",
            str(args.leave_probability),
        ]
        if args.seed is not None:
            run_args += ["--seed", str(args.seed)]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "server":
        from .server import main as run

        run_args = [*_mqtt_argv(args), "--demo-vendors", str(args.demo_vendors)]
        if args.vendors:
            run_args += ["--vendors", args.vendors]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "counter":
        from .counter import main as run

        run_args = [
            "--vendor-id",
            args.vendor_id,
            "--counter-id",
            args.counter_id,
            *_mqtt_argv(args),
            "--mean-service-seconds",
            str(args.mean_service_seconds),
        ]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "customer":
        from .customer import main as run

        run_args = ["--customer-id", args.customer_id, *_mqtt_argv(args)]
        if args.vendor_id:
            run_args += ["--vendor-id", args.vendor_id]
        if args.leave:
            run_args += ["--leave", args.leave]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "estimate":
        print(_offline_estimate(args))
        return


def _offline_estimate(args: argparse.Namespace) -> int:
    from .estimator import estimate_wait_minutes
    from .models import ServiceSample, VendorConfig

    config = VendorConfig(
        max_concurrent_appointments=args.concurrency,
        average_service_duration=args.average_service_duration,
    )
    base = datetime(2000, 1, 1, tzinfo=timezone.utc)
    samples = [ServiceSample(join_time=base, served_at=base + timedelta(minutes=m)) for m in args.sample_minutes]
    return estimate_wait_minutes(config, args.position, samples)


def _mqtt_argv(args: argparse.Namespace) -> list[str]:
    return ["--mqtt-host", args.mqtt_host, "--mqtt-port", str(args.mqtt_port), "--namespace", args.namespace]


def _dispatch_to_module_main(module_main, argv: list[str]) -> None:
    import sys

    old_argv = sys.argv[:]
    try:
        sys.argv = [old_argv[0], *argv]
        module_main()
    finally:
        sys.argv = old_argv


if __name__ == "__main__":
    main()
