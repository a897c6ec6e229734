"""Open a URL in the user's browser.

The platform opener runs with its standard streams detached so nothing it
prints can end up in the relay's stdout protocol stream. If no opener
works, the URL is logged for the user to open by hand.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import webbrowser

logger = logging.getLogger(__name__)


def _platform_command(url: str) -> list[str] | None:
    if sys.platform == "darwin":
        return ["open", url]
    if sys.platform.startswith("linux") or "bsd" in sys.platform:
        opener = shutil.which("xdg-open")
        return [opener, url] if opener else None
    return None


def open_in_browser(url: str) -> bool:
    """Try to open ``url`` in a browser.

    Returns:
        True if some opener accepted the URL, False if the user has to open
        it manually
    """
    if sys.platform == "win32":
        try:
            os.startfile(url)
            return True
        except OSError as e:
            logger.debug(f"os.startfile failed: {e}")

    command = _platform_command(url)
    if command:
        try:
            subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
            return True
        except OSError as e:
            logger.debug(f"Browser command {command[0]} failed: {e}")

    try:
        if webbrowser.open(url):
            return True
    except webbrowser.Error as e:
        logger.debug(f"webbrowser could not open URL: {e}")

    logger.warning(f"Could not open a browser. Open this URL to log in: {url}")
    return False
