"""Shared fixtures for sh-bot tests."""

import sys
from pathlib import Path

import pytest

# Make shbot importable without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from shbot.core.state import PresenceContext
from shbot.core.tracker import RosterError


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


class FakeRunner:
    """Records script runs instead of spawning processes."""

    def __init__(self, clock=None):
        self.clock = clock
        self.calls = []

    async def run(self, path):
        self.calls.append((path, self.clock() if self.clock else None))
        return 0

    @property
    def paths(self):
        return [p for p, _ in self.calls]


class FakeRoster:
    def __init__(self, snapshots=None, voice=None, failing_guilds=()):
        # guild_id -> [(user_id, status)]
        self.snapshots = snapshots or {}
        # (guild_id, channel_id) -> [user_id]
        self.voice = voice or {}
        self.failing_guilds = set(failing_guilds)

    def guild_ids(self):
        ids = list(self.snapshots.keys())
        for guild_id, _ in self.voice.keys():
            if guild_id not in ids:
                ids.append(guild_id)
        return ids

    async def roster_snapshot(self, guild_id):
        if guild_id in self.failing_guilds:
            raise RosterError("boom")
        return list(self.snapshots.get(guild_id, []))

    async def members_in_voice_channel(self, guild_id, channel_id):
        if guild_id in self.failing_guilds:
            raise RosterError("boom")
        return list(self.voice.get((guild_id, channel_id), []))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def runner(clock):
    return FakeRunner(clock)


@pytest.fixture
def make_ctx(clock):
    def _make(tracked=("u1",), vc_only=False):
        return PresenceContext(set(tracked), vc_only=vc_only, clock=clock)
    return _make
