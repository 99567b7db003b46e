# shbot/core/scheduler.py
from __future__ import annotations

import enum
import logging

from shbot.core.logdedup import DedupLogger
from shbot.core.state import PresenceContext, ScriptExecutionState
from shbot.core.timecore import seconds_since

DEBOUNCE_SECONDS = 5.0
TICK_SECONDS = 0.5

# A running script is awaited inside the tick. Nothing else is decided until
# it exits, so a hung script stalls every later transition.
SCRIPT_POLICY = "single in-flight script, scheduler stalls during execution"

log = logging.getLogger(__name__)


class Phase(enum.Enum):
    IDLE = "idle"
    WAITING_FOR_COOLDOWN = "waiting-for-cooldown"


class ScriptScheduler:
    """
    Turns the aggregate state into at most one script run per settled
    transition.

    tick() is called on a fixed period by a single loop and never overlaps
    itself. Each tick walks the guards in order and stops at the first one
    that fails:

      1. no presence/voice event seen yet
      2. aggregate flipped less than `debounce` seconds ago
      3. script for the current state already ran
      4. previous script finished less than `cooldown` seconds ago
         -> WAITING_FOR_COOLDOWN until last_run_at + cooldown, then one
            re-evaluation of whatever the state is at that moment
      5. dispatch
    """

    def __init__(
        self,
        ctx: PresenceContext,
        runner,
        online_script: str,
        offline_script: str,
        cooldown: float,
        debounce: float = DEBOUNCE_SECONDS,
    ):
        self.ctx = ctx
        self.runner = runner
        self.online_script = online_script
        self.offline_script = offline_script
        self.cooldown = cooldown
        self.debounce = debounce

        self.phase = Phase.IDLE
        self.wake_at: float | None = None
        self._dlog = DedupLogger(log)

    def _script_for(self, kind: str) -> str:
        return self.online_script if kind == ScriptExecutionState.ONLINE else self.offline_script

    async def tick(self) -> str | None:
        """Returns the kind of script that ran during this tick, if any."""
        now = self.ctx.clock()

        if self.phase is Phase.WAITING_FOR_COOLDOWN:
            if now < self.wake_at:
                return None
            self.phase = Phase.IDLE
            self.wake_at = None
            log.debug("Cooldown over, re-checking state.")
            return await self.dispatch()

        agg = self.ctx.tracker.snapshot()
        if not agg.ever_observed:
            self._dlog.debug("Haven't received any presence changes, not attempting to run a script until then.")
            return None

        if seconds_since(agg.last_change_at, now) < self.debounce:
            self._dlog.debug("Debouncing...")
            return None

        runs = self.ctx.scripts.snapshot()
        if runs.ran_for(agg.any_online):
            self._dlog.debug("Already ran script for current state.")
            return None

        since_run = seconds_since(runs.last_run_at, now)
        if since_run < self.cooldown:
            self.phase = Phase.WAITING_FOR_COOLDOWN
            self.wake_at = runs.last_run_at + self.cooldown
            log.debug("Waiting %.1fs to run script.", self.wake_at - now)
            return None

        return await self.dispatch()

    async def dispatch(self) -> str | None:
        # Read the aggregate and claim the script under the state locks, so an
        # event landing in between cannot make us run the wrong one.
        with self.ctx.tracker.lock:
            any_online = self.ctx.tracker.any_online
            first_run = self.ctx.scripts.snapshot().last_script is None
            kind = self.ctx.scripts.claim(any_online)

        if kind is None:
            return None

        if first_run:
            log.debug("Running %s script for first run.", kind)
        else:
            log.debug("Running %s script.", kind)
        await self._execute(kind)
        return kind

    async def run_now(self, any_online: bool) -> str | None:
        """Run the script for `any_online` right away, ignoring every guard."""
        kind = self.ctx.scripts.claim(any_online)
        if kind is None:
            return None
        await self._execute(kind)
        return kind

    async def _execute(self, kind: str) -> None:
        path = self._script_for(kind)
        log.info("Running %s script %s", kind, path)
        try:
            await self.runner.run(path)
        finally:
            self.ctx.scripts.finish(self.ctx.clock())
            self._dlog.reset()
