import subprocess
import sys


def run_app(*args):
    return subprocess.run(
        [sys.executable, "-m", "vendor_queue.app", *args],
        capture_output=True,
        text=True,
        check=False,
    )


def test_app_help_runs():
    proc = run_app("-h")
    assert proc.returncode == 0
    out = proc.stdout + proc.stderr
    assert "main entrypoint" in out
    assert "run" in out
    assert "customer" in out
    assert "estimate" in out


def test_run_help_runs():
    proc = run_app("run", "-h")
    assert proc.returncode == 0
    out = proc.stdout + proc.stderr
    assert "num-vendors" in out
    assert "arrival-rate" in out


def test_offline_estimate():
    proc = run_app("estimate", "--position", "3")
    assert proc.returncode == 0
    assert proc.stdout.strip() == "108"

    proc = run_app("estimate", "--position", "1", "--sample-minutes", "10", "--sample-minutes", "20")
    assert proc.stdout.strip() == "23"
