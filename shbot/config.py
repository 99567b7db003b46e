from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv

VERSION = "sh-bot v1.0.2"

DEFAULT_COOLDOWN_SECONDS = 30

log = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """
    Fatal startup problem. `check` names the validation that failed so the
    entry point can report it before exiting.
    """

    def __init__(self, check: str, message: str):
        super().__init__(message)
        self.check = check


@dataclass(frozen=True)
class Settings:
    token: str
    online_script: str
    offline_script: str

    # ---------------- Tracking ----------------
    tracked_ids: frozenset[str] = frozenset()
    voice_channel_id: str = ""                  # empty = voice tracking off
    vc_only: bool = False                       # aggregate = voice occupancy only

    # ---------------- Scripts ----------------
    cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS
    start_online: bool = False
    start_offline: bool = False

    @property
    def track_voice(self) -> bool:
        return bool(self.voice_channel_id)

    @property
    def track_presence(self) -> bool:
        return not self.vc_only


def parse_tracked_ids(raw: str | None) -> frozenset[str]:
    """
    "user1, user2 ,," -> {"user1", "user2"}
    Whitespace around each entry is trimmed, empty entries are skipped.
    """
    ids = set()
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        ids.add(part)
    return frozenset(ids)


def _parse_cooldown(raw: str | None) -> int:
    s = (raw or "").strip()
    if not s:
        return DEFAULT_COOLDOWN_SECONDS
    try:
        return int(s)
    except ValueError:
        log.warning("Could not parse cooldown seconds %r. Ensure your value is only an int.", s)
        return DEFAULT_COOLDOWN_SECONDS


def _parse_voice_channel(raw: str | None) -> str:
    s = (raw or "").strip()
    if not s:
        return ""
    try:
        int(s)
    except ValueError:
        log.warning("Provided voice channel %r is not a valid channel id! Ignoring VC...", s)
        return ""
    return s


def validate_script(path: str | None, which: str = "script") -> str:
    if not path:
        raise ConfigError(which, f"Please provide a path for the {which} to run!")
    if not os.path.exists(path):
        raise ConfigError(which, f"Couldn't find file {path}!")
    if not os.path.isfile(path):
        raise ConfigError(which, f"{path} is not a file!")
    if not os.access(path, os.X_OK):
        raise ConfigError(which, f"File {path} is not executable!")
    return os.path.abspath(path)


def load_settings(
    online_script: str | None,
    offline_script: str | None,
    start_online: bool = False,
    start_offline: bool = False,
    vc_only: bool = False,
) -> Settings:
    # Script flags are checked before the environment is read
    online_script = validate_script(online_script, "online-script")
    offline_script = validate_script(offline_script, "offline-script")
    if start_online and start_offline:
        raise ConfigError(
            "start-flags",
            "You cannot choose to start both online and offline scripts for the first run. Pick one.",
        )

    # .env never overrides the real environment
    load_dotenv(override=False)

    cooldown = _parse_cooldown(os.getenv("COOLDOWN_BTWN_SCRIPTS_SECONDS"))

    voice_channel_id = _parse_voice_channel(os.getenv("VOICE_CHANNEL"))
    if vc_only and not voice_channel_id:
        raise ConfigError(
            "vc-only",
            "Required voice channel, but have an empty voice channel ID! Check your .env",
        )

    # ---------- Token selection ----------
    # DISCORD_BOT_TOKEN first, legacy names as fallback
    token = (
        os.getenv("DISCORD_BOT_TOKEN", "").strip()
        or os.getenv("DISCORD_TOKEN", "").strip()
        or os.getenv("TOKEN", "").strip()
    )
    if not token:
        raise ConfigError(
            "token",
            "Missing bot token.\n"
            "Set DISCORD_BOT_TOKEN=... in your environment or .env.\n"
            "Fallback supported: DISCORD_TOKEN / TOKEN.",
        )

    tracked = parse_tracked_ids(os.getenv("USERS_IDS_TO_TRACK"))
    if not tracked:
        log.warning("USERS_IDS_TO_TRACK is empty, nobody will ever be considered online.")

    return Settings(
        token=token,
        online_script=online_script,
        offline_script=offline_script,
        tracked_ids=tracked,
        voice_channel_id=voice_channel_id,
        vc_only=vc_only,
        cooldown_seconds=cooldown,
        start_online=start_online,
        start_offline=start_offline,
    )
