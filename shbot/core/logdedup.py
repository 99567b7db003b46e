import logging


class DedupLogger:
    """
    Wraps a logger and drops a message identical to the previous one.

    The scheduler ticks twice a second and most ticks end in the same
    "nothing to do" line, so only the first of a run is kept.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._last: str | None = None

    def log(self, level: int, msg: str) -> bool:
        if msg == self._last:
            return False
        self._last = msg
        self.logger.log(level, msg)
        return True

    def debug(self, msg: str) -> bool:
        return self.log(logging.DEBUG, msg)

    def reset(self) -> None:
        self._last = None
