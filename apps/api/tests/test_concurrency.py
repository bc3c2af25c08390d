import threading

import pytest

from core.concurrency import run_concurrently


def test_returns_results_by_name():
    assert run_concurrently({"a": lambda: 1, "b": lambda: "two"}) == {"a": 1, "b": "two"}


def test_empty_calls():
    assert run_concurrently({}) == {}


def test_calls_run_side_by_side():
    barrier = threading.Barrier(3, timeout=5)

    def _wait():
        barrier.wait()
        return True

    assert run_concurrently({str(i): _wait for i in range(3)}, max_workers=3) == {
        "0": True, "1": True, "2": True,
    }


def test_first_failure_is_raised():
    def _boom():
        raise LookupError("missing row")

    with pytest.raises(LookupError, match="missing row"):
        run_concurrently({"ok": lambda: 1, "bad": _boom})
