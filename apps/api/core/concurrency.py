"""
Fail-fast fan-out for independent blocking I/O.

Used to issue the per-day reads of the summary aggregation and the three
Whoop collection fetches side by side. Concurrency here only buys latency:
the first failure is re-raised and the joint operation fails.
"""
from concurrent.futures import ThreadPoolExecutor, FIRST_EXCEPTION, wait
from typing import Callable, Dict, Optional, TypeVar

from core.config import settings

T = TypeVar("T")


def run_concurrently(
    calls: Dict[str, Callable[[], T]],
    max_workers: Optional[int] = None,
) -> Dict[str, T]:
    """
    Run zero-argument callables on a thread pool and return their results by name.

    Raises the first exception raised by any call; calls that have not started
    yet are cancelled.
    """
    if not calls:
        return {}

    workers = max(1, min(max_workers or settings.WHOOP_SYNC_FANOUT, len(calls)))
    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fanout")
    try:
        futures = {name: pool.submit(fn) for name, fn in calls.items()}
        done, _pending = wait(futures.values(), return_when=FIRST_EXCEPTION)
        for future in done:
            exc = future.exception()
            if exc is not None:
                raise exc
        # No failure among the finished ones: FIRST_EXCEPTION waited for all.
        return {name: future.result() for name, future in futures.items()}
    finally:
        # Not joined: fanned-out calls only read, so stragglers after a failure write nothing.
        pool.shutdown(wait=False, cancel_futures=True)
