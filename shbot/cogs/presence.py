# shbot/cogs/presence.py

import asyncio
import logging

import discord
from discord.ext import commands

from shbot.core.tracker import PresenceTracker

log = logging.getLogger(__name__)


class PresenceCog(commands.Cog):
    """
    Feeds gateway events into the PresenceTracker:
    - presence updates (unless voice-only)
    - voice state updates (only when a voice channel is configured)
    - one bootstrap scan on the first on_ready
    """

    def __init__(self, bot: commands.Bot, settings, tracker: PresenceTracker):
        self.bot = bot
        self.settings = settings
        self.tracker = tracker
        self.bootstrapped = asyncio.Event()

    # ---------------- bootstrap ----------------

    @commands.Cog.listener()
    async def on_ready(self):
        # on_ready fires again after every reconnect
        if self.bootstrapped.is_set():
            return

        forced = self.settings.start_online or self.settings.start_offline
        try:
            await self.tracker.bootstrap(recompute=not forced)
        finally:
            self.bootstrapped.set()
        print(f"[sh-bot] ✅ ONLINE as {self.bot.user} | guilds={len(self.bot.guilds)}. exit with ctrl+c.")

    # ---------------- presence ----------------

    @commands.Cog.listener()
    async def on_presence_update(self, before: discord.Member, after: discord.Member):
        if not self.settings.track_presence:
            return
        # Fires once per shared guild; repeats just overwrite the same status
        self.tracker.handle_presence(str(after.id), str(after.status))

    # ---------------- voice ----------------

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ):
        if not self.settings.track_voice:
            return

        await self.tracker.handle_voice(
            user_id=str(member.id),
            guild_id=str(member.guild.id),
            channel_id=str(after.channel.id) if after.channel else "",
            before_channel_id=str(before.channel.id) if before.channel else "",
        )
