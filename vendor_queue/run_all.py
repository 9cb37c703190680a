from __future__ import annotations

# Single-command runner.
#
# Starts a full local system by spawning child processes:
# - the queue server (with V1..VN demo vendors, or a vendor file)
# - one service counter per vendor
# - the customer generator (Poisson arrivals)
#
# The components remain independent processes talking over MQTT.

import argparse
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass


@dataclass
class Child:
    name: str
    proc: subprocess.Popen


def run_all(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    num_vendors: int,
    arrival_rate: float,
    seed: int | None,
    mean_service_seconds: float,
    leave_probability: float,
) -> None:
    if num_vendors <= 0:
        raise ValueError("num_vendors must be > 0")
    if arrival_rate <= 0:
        raise ValueError("arrival_rate must be > 0")

    python = sys.executable
    mqtt_args = ["--mqtt-host", mqtt_host, "--mqtt-port", str(mqtt_port), "--namespace", namespace]

    # Same process group per child so Ctrl+C can stop everything.
    def popen(name: str, args: list[str]) -> Child:
        return Child(name=name, proc=subprocess.Popen(args, preexec_fn=os.setsid))

    children: list[Child] = []
    children.append(
        popen(
            "server",
            [python, "-m", "vendor_queue.server", *mqtt_args, "--demo-vendors", str(num_vendors)],
        )
    )

    # Small delay so the server subscribes before others start sending requests.
    time.sleep(0.5)

    vendor_ids = [f"V{i}" for i in range(1, num_vendors + 1)]
    for vid in vendor_ids:
        counter_args = [
            python,
            "-m",
            "vendor_queue.counter",
            "--vendor-id",
            vid,
            *mqtt_args,
            "--mean-service-seconds",
            str(mean_service_seconds),
        ]
        children.append(popen(f"counter-{vid}", counter_args))

    gen_args = [python, "-m", "vendor_queue.generator", *mqtt_args, "--rate", str(arrival_rate)]
    for vid in vendor_ids:
        gen_args += ["--vendor-id", vid]
    gen_args += ["--leave-probability", str(leave_probability)]
    if seed is not None:
        gen_args += ["--seed", str(seed)]
    children.append(popen("generator", gen_args))

    print(
        "[run] started: "
        + ", ".join(f"{c.name}(pid={c.proc.pid})" for c in children)
        + "\nPress Ctrl+C to stop all."
    )

    try:
        # Wait until any child exits unexpectedly.
        while True:
            for c in children:
                rc = c.proc.poll()
                if rc is not None:
                    raise RuntimeError(f"Child {c.name} exited with code {rc}")
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        _terminate_children(children)


def _signal_group(child: Child, sig: int) -> None:
    try:
        os.killpg(os.getpgid(child.proc.pid), sig)
    except ProcessLookupError:
        pass  # exited between poll() and kill


def _terminate_children(children: list[Child]) -> None:
    for c in children:
        if c.proc.poll() is None:
            _signal_group(c, signal.SIGTERM)

    deadline = time.time() + 2.0
    while time.time() < deadline:
        if all(c.proc.poll() is not None for c in children):
            return
        time.sleep(0.1)

    for c in children:
        if c.proc.poll() is None:
            _signal_group(c, signal.SIGKILL)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run queue server + counters + generator")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=f"vendorqueue/run/{int(time.time())}")
    parser.add_argument("--num-vendors", type=int, required=True)
    parser.add_argument("--arrival-rate", type=float, required=True, help="λ customers/second")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--mean-service-seconds", type=float, default=2.0)
    parser.add_argument("--leave-probability", type=float, default=0.0)
    args = parser.parse_args()

    run_all(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        num_vendors=args.num_vendors,
        arrival_rate=args.arrival_rate,
        seed=args.seed,
        mean_service_seconds=args.mean_service_seconds,
        leave_probability=args.leave_probability,
    )


if __name__ == "__main__":
    main()
