"""Tests for presence/voice event handling and the startup bootstrap."""

import logging

import pytest

from shbot.core.tracker import PresenceTracker

from conftest import FakeRoster


class TestPresenceEvents:
    def test_tracked_user_online(self, make_ctx):
        ctx = make_ctx(tracked=("u1",))
        tracker = PresenceTracker(ctx, FakeRoster())

        assert tracker.handle_presence("u1", "online") is True
        assert ctx.tracker.snapshot().any_online is True

    def test_untracked_user_is_noop(self, make_ctx):
        ctx = make_ctx(tracked=("u1",))
        tracker = PresenceTracker(ctx, FakeRoster())

        assert tracker.handle_presence("stranger", "online") is False
        assert ctx.presence.has("stranger") is False
        snap = ctx.tracker.snapshot()
        assert snap.any_online is False
        assert snap.ever_observed is False

    def test_any_of_several_users(self, make_ctx):
        ctx = make_ctx(tracked=("u1", "u2"))
        tracker = PresenceTracker(ctx, FakeRoster())

        tracker.handle_presence("u1", "online")
        tracker.handle_presence("u2", "idle")
        tracker.handle_presence("u1", "offline")
        assert ctx.tracker.snapshot().any_online is True

        tracker.handle_presence("u2", "offline")
        assert ctx.tracker.snapshot().any_online is False


class TestVoiceEvents:
    @pytest.fixture
    def roster(self):
        return FakeRoster(voice={("g1", "123"): []})

    @pytest.fixture
    def ctx(self, make_ctx):
        return make_ctx(tracked=("u1",), vc_only=True)

    @pytest.fixture
    def tracker(self, ctx, roster):
        return PresenceTracker(ctx, roster, voice_channel_id="123")

    @pytest.mark.asyncio
    async def test_join_presence_move_away(self, ctx, tracker, roster):
        roster.voice[("g1", "123")] = ["u1"]
        assert await tracker.handle_voice("u1", "g1", "123", "") is True
        assert ctx.tracker.snapshot().any_online is True

        # presence alone never moves a voice-only aggregate
        assert tracker.handle_presence("u1", "offline") is False
        assert ctx.tracker.snapshot().any_online is True

        roster.voice[("g1", "123")] = []
        assert await tracker.handle_voice("u1", "g1", "456", "123") is True
        assert ctx.tracker.snapshot().any_online is False

    @pytest.mark.asyncio
    async def test_leave_channel(self, ctx, tracker, roster):
        roster.voice[("g1", "123")] = ["u1"]
        await tracker.handle_voice("u1", "g1", "123", "")

        roster.voice[("g1", "123")] = []
        assert await tracker.handle_voice("u1", "g1", "", "123") is True
        assert ctx.voice.get() is False

    @pytest.mark.asyncio
    async def test_other_channel_ignored(self, ctx, tracker, roster):
        roster.voice[("g1", "999")] = ["u1"]
        assert await tracker.handle_voice("u1", "g1", "999", "") is False
        assert ctx.tracker.snapshot().ever_observed is False

    @pytest.mark.asyncio
    async def test_untracked_member_in_channel(self, ctx, tracker, roster):
        roster.voice[("g1", "123")] = ["stranger"]
        assert await tracker.handle_voice("stranger", "g1", "123", "") is False
        assert ctx.voice.get() is False
        assert ctx.tracker.snapshot().ever_observed is True

    @pytest.mark.asyncio
    async def test_roster_error_leaves_state(self, ctx, caplog):
        roster = FakeRoster(failing_guilds={"g1"})
        tracker = PresenceTracker(ctx, roster, voice_channel_id="123")

        with caplog.at_level(logging.WARNING):
            assert await tracker.handle_voice("u1", "g1", "123", "") is False
        assert ctx.tracker.snapshot().ever_observed is False
        assert "Error getting voice channel members" in caplog.text

    @pytest.mark.asyncio
    async def test_voice_or_presence_without_vc_only(self, make_ctx, roster):
        ctx = make_ctx(tracked=("u1",), vc_only=False)
        tracker = PresenceTracker(ctx, roster, voice_channel_id="123")

        roster.voice[("g1", "123")] = ["u1"]
        await tracker.handle_voice("u1", "g1", "123", "")
        tracker.handle_presence("u1", "offline")
        assert ctx.tracker.snapshot().any_online is True

        roster.voice[("g1", "123")] = []
        await tracker.handle_voice("u1", "g1", "", "123")
        assert ctx.tracker.snapshot().any_online is False

        tracker.handle_presence("u1", "dnd")
        assert ctx.tracker.snapshot().any_online is True


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_seeds_presence(self, make_ctx, clock):
        ctx = make_ctx(tracked=("u1", "u2"))
        roster = FakeRoster(snapshots={"g1": [("u1", "online"), ("x", "online"), ("u2", "offline")]})
        tracker = PresenceTracker(ctx, roster)

        await tracker.bootstrap()

        assert ctx.presence.get("u1") == "online"
        assert ctx.presence.get("u2") == "offline"
        assert ctx.presence.has("x") is False
        snap = ctx.tracker.snapshot()
        assert snap.any_online is True
        assert snap.ever_observed is True
        assert snap.last_change_at == clock.now

    @pytest.mark.asyncio
    async def test_keeps_already_recorded(self, make_ctx):
        ctx = make_ctx(tracked=("u1",))
        tracker = PresenceTracker(ctx, FakeRoster(snapshots={"g1": [("u1", "online")]}))
        tracker.handle_presence("u1", "offline")

        await tracker.bootstrap()
        assert ctx.presence.get("u1") == "offline"

    @pytest.mark.asyncio
    async def test_failed_guild_is_skipped(self, make_ctx, caplog):
        ctx = make_ctx(tracked=("u1",))
        roster = FakeRoster(
            snapshots={"bad": [("u1", "online")], "g2": [("u1", "idle")]},
            failing_guilds={"bad"},
        )
        tracker = PresenceTracker(ctx, roster)

        with caplog.at_level(logging.WARNING):
            await tracker.bootstrap()

        assert ctx.presence.get("u1") == "idle"
        assert "Failed to get members for guild bad" in caplog.text

    @pytest.mark.asyncio
    async def test_voice_only_skips_presence(self, make_ctx):
        ctx = make_ctx(tracked=("u1",), vc_only=True)
        roster = FakeRoster(
            snapshots={"g1": [("u1", "online")]},
            voice={("g1", "123"): ["u1"]},
        )
        tracker = PresenceTracker(ctx, roster, voice_channel_id="123")

        await tracker.bootstrap()
        assert ctx.presence.has("u1") is False
        assert ctx.voice.get() is True
        assert ctx.tracker.snapshot().any_online is True

    @pytest.mark.asyncio
    async def test_other_guild_does_not_clear_voice(self, make_ctx):
        ctx = make_ctx(tracked=("u1",), vc_only=True)
        roster = FakeRoster(voice={("g1", "123"): ["u1"], ("g2", "123"): []})
        tracker = PresenceTracker(ctx, roster, voice_channel_id="123")

        await tracker.bootstrap()
        assert ctx.voice.get() is True

    @pytest.mark.asyncio
    async def test_forced_state_survives_bootstrap(self, make_ctx, clock):
        ctx = make_ctx(tracked=("u1",))
        ctx.tracker.force(True, clock())
        forced_at = clock.now
        clock.advance(3)

        roster = FakeRoster(snapshots={"g1": [("u1", "offline")]})
        await PresenceTracker(ctx, roster).bootstrap(recompute=False)

        assert ctx.presence.get("u1") == "offline"
        snap = ctx.tracker.snapshot()
        assert snap.any_online is True
        assert snap.last_change_at == forced_at
