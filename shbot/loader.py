# shbot/loader.py
from __future__ import annotations

import traceback

from shbot.cogs.presence import PresenceCog
from shbot.cogs.scheduler import SchedulerCog
from shbot.core.tracker import PresenceTracker
from shbot.services.roster import DiscordRoster


async def load_all(bot, settings, ctx, scheduler):
    print("[sh-bot] Starting loader...")

    # attach shared deps (so any cog can grab them if needed)
    bot.settings = settings
    bot.presence_ctx = ctx
    bot.scheduler = scheduler

    tracker = PresenceTracker(ctx, DiscordRoster(bot), voice_channel_id=settings.voice_channel_id)

    # ---------------- PRESENCE ----------------
    # The scheduler waits on this cog's bootstrap, so a failure here is fatal.
    try:
        presence_cog = PresenceCog(bot, settings, tracker)
        await bot.add_cog(presence_cog)
        print("[sh-bot] ✅ PresenceCog loaded")
    except Exception:
        print("[sh-bot] ❌ PresenceCog FAILED")
        traceback.print_exc()
        raise

    # ---------------- SCHEDULER ----------------
    try:
        await bot.add_cog(SchedulerCog(bot, scheduler, presence_cog.bootstrapped))
        print("[sh-bot] ✅ SchedulerCog loaded")
    except Exception:
        print("[sh-bot] ❌ SchedulerCog FAILED")
        traceback.print_exc()
        raise

    print("[sh-bot] Loaded cogs:", ", ".join(bot.cogs.keys()))
    return tracker
