# shbot/cogs/scheduler.py

import asyncio
import logging

from discord.ext import commands, tasks

from shbot.core.scheduler import ScriptScheduler, TICK_SECONDS, SCRIPT_POLICY

log = logging.getLogger(__name__)


class SchedulerCog(commands.Cog):
    """
    Drives ScriptScheduler.tick() on a fixed period. tasks.loop waits for one
    iteration to finish before sleeping for the next, so ticks never overlap.
    """

    def __init__(self, bot: commands.Bot, scheduler: ScriptScheduler, bootstrapped: asyncio.Event):
        self.bot = bot
        self.scheduler = scheduler
        self.bootstrapped = bootstrapped
        self.tick.start()

    def cog_unload(self):
        self.tick.cancel()

    @tasks.loop(seconds=TICK_SECONDS)
    async def tick(self):
        await self.scheduler.tick()

    @tick.before_loop
    async def before_tick(self):
        await self.bot.wait_until_ready()
        await self.bootstrapped.wait()
        log.info(
            "Scheduler started: debounce=%ss cooldown=%ss policy=%s",
            self.scheduler.debounce, self.scheduler.cooldown, SCRIPT_POLICY,
        )
