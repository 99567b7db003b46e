# shbot/main.py
import asyncio
import logging
import sys

import click
import discord
from discord.ext import commands

from shbot.config import VERSION, ConfigError, load_settings
from shbot.core.scheduler import ScriptScheduler
from shbot.core.state import PresenceContext
from shbot.loader import load_all
from shbot.services.script_runner import ScriptRunner

log = logging.getLogger("shbot")


def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=f"%(asctime)s %(levelname)-8s %(name)s: %(message)s [{VERSION}]",
        datefmt="%a %b %d %H:%M:%S %Y",
    )
    # discord.py's gateway chatter is noise at DEBUG
    logging.getLogger("discord").setLevel(logging.INFO)


def build_intents(settings) -> discord.Intents:
    intents = discord.Intents.default()
    intents.members = True
    intents.presences = True
    intents.voice_states = settings.track_voice
    return intents


async def run(settings):
    ctx = PresenceContext(settings.tracked_ids, vc_only=settings.vc_only)
    scheduler = ScriptScheduler(
        ctx,
        ScriptRunner(),
        online_script=settings.online_script,
        offline_script=settings.offline_script,
        cooldown=settings.cooldown_seconds,
    )

    print(f"[sh-bot] {VERSION} | tracking={len(settings.tracked_ids)} users | "
          f"voice={settings.voice_channel_id or '-'} | vc_only={settings.vc_only}")

    # Presence data is unreliable right after connecting; the start flags
    # settle the first state by hand before the gateway opens.
    if settings.start_online or settings.start_offline:
        any_online = settings.start_online
        log.info("Running %s script before starting the bot!", "online" if any_online else "offline")
        await scheduler.run_now(any_online)
        ctx.tracker.force(any_online, ctx.clock())

    bot = commands.Bot(command_prefix=commands.when_mentioned, intents=build_intents(settings))

    @bot.event
    async def setup_hook():
        await load_all(bot, settings, ctx, scheduler)
        print("[sh-bot] setup_hook: cogs loaded ✅")

    async with bot:
        await bot.start(settings.token)


@click.command(name="sh-bot")
@click.option("--online-script", default="",
              help="REQUIRED: Location of the script to run when someone is online. Local or full path.")
@click.option("--offline-script", default="",
              help="REQUIRED: Location of the script to run when everyone goes offline. Local or full path.")
@click.option("--start-online", is_flag=True,
              help="Run the online script at startup and start in the online state.")
@click.option("--start-offline", is_flag=True,
              help="Run the offline script at startup and start in the offline state.")
@click.option("--vc-only", is_flag=True,
              help="Only fire scripts based on whether tracked members are in the voice channel.")
@click.option("--debug", is_flag=True, help="Verbose logging.")
@click.version_option(VERSION, message="%(version)s")
def cli(online_script, offline_script, start_online, start_offline, vc_only, debug):
    """Run a script when any tracked Discord user comes online, another when all go offline."""
    setup_logging(debug)

    try:
        settings = load_settings(
            online_script=online_script,
            offline_script=offline_script,
            start_online=start_online,
            start_offline=start_offline,
            vc_only=vc_only,
        )
    except ConfigError as e:
        log.critical("Invalid configuration (%s): %s", e.check, e)
        sys.exit(1)

    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        print("[sh-bot] interrupted, exiting.")
    except discord.LoginFailure as e:
        log.critical("Could not log in: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
