# shbot/core/tracker.py
from __future__ import annotations

import logging

from shbot.core.logdedup import DedupLogger
from shbot.core.state import PresenceContext

log = logging.getLogger(__name__)


class RosterError(Exception):
    """A roster/presence query against the platform failed."""


class PresenceTracker:
    """
    Applies presence and voice events to the shared context and recomputes
    the aggregate after each one.

    `roster` is the platform side, anything with:
      guild_ids() -> list[str]
      async roster_snapshot(guild_id) -> list[(user_id, status)]
      async members_in_voice_channel(guild_id, channel_id) -> list[user_id]
    Both queries raise RosterError on failure.
    """

    def __init__(self, ctx: PresenceContext, roster, voice_channel_id: str = ""):
        self.ctx = ctx
        self.roster = roster
        self.voice_channel_id = voice_channel_id
        self._dlog = DedupLogger(log)

    # ---------------- presence ----------------

    def handle_presence(self, user_id: str, status: str) -> bool:
        """Returns True when the aggregate flipped."""
        previous = self.ctx.presence.get(user_id)
        if not self.ctx.presence.record_presence(user_id, status):
            self._dlog.debug(f"Ignoring {user_id} presence update")
            return False

        log.info("%s had previous status of %s and now has status of %s", user_id, previous, status)
        return self._recompute()

    # ---------------- voice ----------------

    def is_relevant_channel(self, channel_id: str, before_channel_id: str) -> bool:
        if not self.voice_channel_id:
            return False
        return self.voice_channel_id in (channel_id, before_channel_id)

    async def handle_voice(self, user_id: str, guild_id: str, channel_id: str, before_channel_id: str) -> bool:
        """
        channel_id / before_channel_id are "" when the user is not in a channel.
        Joining, leaving or moving out of the watched channel all count.
        """
        if not self.is_relevant_channel(channel_id, before_channel_id):
            self._dlog.debug(f"Ignoring channel update for channel {channel_id or before_channel_id}")
            return False

        try:
            members = await self.roster.members_in_voice_channel(guild_id, self.voice_channel_id)
        except RosterError as e:
            log.warning("Error getting voice channel members for guild %s: %s", guild_id, e)
            return False

        return self.set_voice_occupancy(members)

    def set_voice_occupancy(self, member_ids) -> bool:
        tracked = self.ctx.tracked_ids
        occupied = any(uid in tracked for uid in member_ids)
        self.ctx.voice.set(occupied)
        return self._recompute()

    def _recompute(self) -> bool:
        flipped = self.ctx.recompute()
        if flipped:
            agg = self.ctx.tracker.snapshot()
            log.info("Aggregate state is now %s", "online" if agg.any_online else "offline")
        return flipped

    # ---------------- bootstrap ----------------

    async def bootstrap(self, recompute: bool = True) -> None:
        """
        Seed presence and voice state from what the platform knows right now.

        With recompute=False the stores are filled but the aggregate is left
        alone (it was forced by a start flag).
        """
        seeded = 0
        for guild_id in self.roster.guild_ids():
            if self.ctx.presence.tracked_ids and not self.ctx.vc_only:
                try:
                    snapshot = await self.roster.roster_snapshot(guild_id)
                except RosterError as e:
                    log.warning("Failed to get members for guild %s: %s", guild_id, e)
                    continue

                for user_id, status in snapshot:
                    if not self.ctx.presence.is_tracked(user_id) or self.ctx.presence.has(user_id):
                        continue
                    self.ctx.presence.record_presence(user_id, status)
                    seeded += 1
                    if recompute:
                        self._recompute()

            if self.voice_channel_id:
                try:
                    members = await self.roster.members_in_voice_channel(guild_id, self.voice_channel_id)
                except RosterError as e:
                    log.warning("Error getting voice channel members for guild %s: %s", guild_id, e)
                    continue

                # The channel lives in one guild; others report it empty and
                # must not clear what the owning guild found.
                occupied = any(uid in self.ctx.tracked_ids for uid in members)
                if occupied or not self.ctx.voice.get():
                    self.ctx.voice.set(occupied)
                if recompute:
                    self._recompute()

        agg = self.ctx.tracker.snapshot()
        log.info(
            "Bootstrap done: seeded=%s in_voice=%s any_online=%s",
            seeded, self.ctx.voice.get(), agg.any_online,
        )
