# shbot/services/roster.py
from __future__ import annotations

import asyncio
import logging

import discord

from shbot.core.tracker import RosterError

log = logging.getLogger(__name__)


class DiscordRoster:
    """
    Roster queries answered from discord.py's member/voice cache.
    Ids go out as strings, statuses as discord.Status values ("online",
    "idle", "dnd", "offline").
    """

    def __init__(self, client: discord.Client, chunk_timeout: float = 30.0):
        self.client = client
        self.chunk_timeout = chunk_timeout

    def guild_ids(self) -> list[str]:
        return [str(g.id) for g in self.client.guilds]

    def _guild(self, guild_id: str) -> discord.Guild:
        guild = self.client.get_guild(int(guild_id))
        if guild is None:
            raise RosterError(f"guild {guild_id} is not in the cache")
        return guild

    async def roster_snapshot(self, guild_id: str) -> list[tuple[str, str]]:
        guild = self._guild(guild_id)

        if not guild.chunked:
            try:
                await asyncio.wait_for(guild.chunk(), timeout=self.chunk_timeout)
            except (discord.HTTPException, discord.ClientException, asyncio.TimeoutError) as e:
                raise RosterError(f"could not load members: {type(e).__name__}: {e}") from e

        return [(str(m.id), str(m.status)) for m in guild.members if not m.bot]

    async def members_in_voice_channel(self, guild_id: str, channel_id: str) -> list[str]:
        guild = self._guild(guild_id)

        channel = guild.get_channel(int(channel_id))
        if channel is None:
            log.debug("Voice channel %s is not in guild %s", channel_id, guild_id)
            return []
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            raise RosterError(f"channel {channel_id} is not a voice channel")

        # voice_states carries user ids even when the member isn't cached
        return [str(uid) for uid in channel.voice_states.keys()]
