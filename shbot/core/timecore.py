import time


def now_monotonic() -> float:
    """Seconds on a clock that never jumps; only differences are meaningful."""
    return time.monotonic()


def seconds_since(ts, now):
    # None means "never happened"
    if ts is None:
        return float("inf")
    return now - ts
