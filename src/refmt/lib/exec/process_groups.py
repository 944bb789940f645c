"""Process-group helpers for formatter subprocesses."""

from __future__ import annotations

import asyncio
import os
import signal


def signal_process_group(
    process: asyncio.subprocess.Process,
    signum: signal.Signals,
) -> None:
    """Send one signal to the formatter's process group.

    Formatters may spawn helpers (``npx``, shell wrappers), so signals target
    the whole group. The child may exit between the returncode check and
    delivery; ProcessLookupError is an expected race.
    """

    if process.returncode is not None:
        return

    try:
        os.killpg(os.getpgid(process.pid), signum)
    except ProcessLookupError:
        return
