# shbot/core/state.py
from __future__ import annotations

import threading
from dataclasses import dataclass

from shbot.core.timecore import now_monotonic

STATUS_OFFLINE = "offline"


class PresenceStore:
    """
    user_id -> last known status ("online", "idle", "dnd", "offline").
    Untracked users are never stored. Entries are never removed.
    """

    def __init__(self, tracked_ids):
        self.tracked_ids = frozenset(tracked_ids)
        self._statuses: dict[str, str] = {}
        # plain mutex stands in for a reader/writer lock; never held across an await
        self._lock = threading.Lock()

    def is_tracked(self, user_id: str) -> bool:
        return user_id in self.tracked_ids

    def record_presence(self, user_id: str, status: str) -> bool:
        if user_id not in self.tracked_ids:
            return False
        with self._lock:
            self._statuses[user_id] = status
        return True

    def get(self, user_id: str) -> str | None:
        with self._lock:
            return self._statuses.get(user_id)

    def has(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._statuses

    def any_present(self) -> bool:
        with self._lock:
            for user_id in self.tracked_ids:
                status = self._statuses.get(user_id)
                if status and status != STATUS_OFFLINE:
                    return True
        return False


class VoiceOccupancy:
    """Is any tracked user in the configured voice channel."""

    def __init__(self):
        self._occupied = False
        # plain mutex for the reader/writer lock, see PresenceStore
        self._lock = threading.Lock()

    def set(self, occupied: bool) -> None:
        with self._lock:
            self._occupied = bool(occupied)

    def get(self) -> bool:
        with self._lock:
            return self._occupied


def is_any_online(vc_only: bool, in_voice: bool, presence: PresenceStore) -> bool:
    # Order matters: voice-only ignores presence entirely, otherwise being in
    # the channel is enough, otherwise fall back to presence statuses.
    if vc_only:
        return in_voice
    if in_voice:
        return True
    return presence.any_present()


@dataclass(frozen=True)
class AggregateSnapshot:
    any_online: bool
    last_change_at: float | None
    ever_observed: bool


class TransitionTracker:
    """
    The aggregate "anyone online" flag, when it last flipped, and whether any
    presence/voice event was ever seen. `lock` covers all three.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.any_online = False
        self.last_change_at: float | None = None
        self.ever_observed = False

    def observe(self, new_value: bool, now: float) -> bool:
        """Caller holds `lock`. Returns True when the aggregate flipped."""
        self.ever_observed = True
        if new_value == self.any_online:
            return False
        self.any_online = new_value
        self.last_change_at = now
        return True

    def force(self, value: bool, now: float) -> None:
        with self.lock:
            self.ever_observed = True
            self.any_online = bool(value)
            self.last_change_at = now

    def snapshot(self) -> AggregateSnapshot:
        with self.lock:
            return AggregateSnapshot(self.any_online, self.last_change_at, self.ever_observed)


@dataclass(frozen=True)
class ExecutionSnapshot:
    online_ran: bool
    offline_ran: bool
    last_run_at: float | None
    in_flight: bool
    last_script: str | None

    def ran_for(self, any_online: bool) -> bool:
        return self.online_ran if any_online else self.offline_ran


class ScriptExecutionState:
    """
    Which script ran for the current state, when the last one finished and
    whether one is running right now. At most one of online_ran/offline_ran
    is set.
    """

    ONLINE = "online"
    OFFLINE = "offline"

    def __init__(self):
        self._lock = threading.Lock()
        self.online_ran = False
        self.offline_ran = False
        self.last_run_at: float | None = None
        self.in_flight = False
        self.last_script: str | None = None

    def snapshot(self) -> ExecutionSnapshot:
        with self._lock:
            return ExecutionSnapshot(
                self.online_ran, self.offline_ran, self.last_run_at, self.in_flight, self.last_script
            )

    def claim(self, any_online: bool) -> str | None:
        """
        Decide and mark in one step. Returns the script kind that must run now,
        or None when the script for this state already ran (or one is running).
        Before anything has run, the script matching `any_online` always wins.
        """
        with self._lock:
            if self.in_flight:
                return None

            if any_online:
                if self.online_ran:
                    return None
                kind = self.ONLINE
            else:
                if self.offline_ran:
                    return None
                kind = self.OFFLINE

            self.online_ran = kind == self.ONLINE
            self.offline_ran = kind == self.OFFLINE
            self.in_flight = True
            self.last_script = kind
            return kind

    def finish(self, now: float) -> None:
        with self._lock:
            self.in_flight = False
            self.last_run_at = now


class PresenceContext:
    """
    Everything the event handlers and the scheduler share. Built once at
    startup and handed to both; nothing lives at module level.
    """

    def __init__(self, tracked_ids, vc_only: bool = False, clock=now_monotonic):
        self.vc_only = vc_only
        self.clock = clock
        self.presence = PresenceStore(tracked_ids)
        self.voice = VoiceOccupancy()
        self.tracker = TransitionTracker()
        self.scripts = ScriptExecutionState()

    @property
    def tracked_ids(self) -> frozenset[str]:
        return self.presence.tracked_ids

    def any_online(self) -> bool:
        return is_any_online(self.vc_only, self.voice.get(), self.presence)

    def recompute(self) -> bool:
        """Recompute the aggregate after an event. Returns True on a flip."""
        with self.tracker.lock:
            return self.tracker.observe(self.any_online(), self.clock())
