# shbot/services/script_runner.py
from __future__ import annotations

import asyncio
import logging
import os
import sys

log = logging.getLogger(__name__)


class ScriptRunner:
    """
    Runs an executable with no arguments and waits for it.
    Non-zero exits and spawn failures are logged as warnings, never raised.
    """

    def __init__(self, out=None):
        self.out = out if out is not None else sys.stdout
        self.last_path: str | None = None

    async def run(self, path: str) -> int | None:
        self.last_path = path
        # exec searches PATH for bare names; run the file the path points at
        path = os.path.abspath(path)
        try:
            proc = await asyncio.create_subprocess_exec(
                path,
                stdout=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            log.warning("Error running script %s: %s", path, e)
            return None

        stdout, _ = await proc.communicate()
        if stdout:
            print(stdout.decode(errors="replace"), end="", file=self.out, flush=True)

        if proc.returncode != 0:
            log.warning("Error running script %s: exit status %s", path, proc.returncode)
        return proc.returncode
