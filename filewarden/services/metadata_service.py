"""Foreground application metadata for screenshot rules"""

import re
import sys
import asyncio
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urlparse

from filewarden.schemas.rules import ScreenshotMetadata

logger = logging.getLogger(__name__)

BROWSERS = [
    "Safari", "Google Chrome", "Chrome", "Microsoft Edge", "Edge",
    "Brave Browser", "Brave", "Arc", "Opera", "Vivaldi",
]

BROWSER_URL_SCRIPTS = {
    "Safari": 'tell application "Safari" to return URL of front document',
    "Google Chrome": 'tell application "Google Chrome" to return URL of active tab of front window',
    "Microsoft Edge": 'tell application "Microsoft Edge" to return URL of active tab of front window',
    "Brave Browser": 'tell application "Brave Browser" to return URL of active tab of front window',
    "Arc": 'tell application "Arc" to return URL of active tab of front window',
    "Vivaldi": 'tell application "Vivaldi" to return URL of active tab of front window',
}

FRONT_APP_SCRIPT = (
    'tell application "System Events" to get name of first application process whose frontmost is true'
)
FRONT_WINDOW_SCRIPT = (
    'tell application "System Events" to tell (first application process whose frontmost is true) '
    'to get name of front window'
)

_DOMAIN_IN_TITLE = re.compile(r"([a-zA-Z0-9-]+\.[a-zA-Z]{2,})")


def is_browser(app_name: str) -> bool:
    return any(b in app_name for b in BROWSERS)


def domain_from_url(url: str) -> Optional[str]:
    host = urlparse(url).hostname
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def domain_from_title(window_title: str, app_name: str) -> Optional[str]:
    """Fallback when the browser URL cannot be read"""
    if not is_browser(app_name):
        return None
    match = _DOMAIN_IN_TITLE.search(window_title)
    return match.group(1).lower() if match else None


class MetadataProvider:
    """Returns nothing: metadata capture is unavailable"""

    async def capture(self) -> Optional[ScreenshotMetadata]:
        return None


class MacMetadataProvider(MetadataProvider):
    """Queries macOS for the frontmost app, window title and browser URL via osascript"""

    async def _osascript(self, script: str) -> Optional[str]:
        try:
            process = await asyncio.create_subprocess_exec(
                "osascript", "-e", script,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            logger.debug(f"osascript unavailable: {e}")
            return None

        if process.returncode != 0:
            logger.debug(f"osascript failed: {stderr.decode(errors='replace').strip()}")
            return None
        return stdout.decode(errors="replace").strip() or None

    async def capture(self) -> Optional[ScreenshotMetadata]:
        app_name = await self._osascript(FRONT_APP_SCRIPT)
        if not app_name:
            return None

        window_title = await self._osascript(FRONT_WINDOW_SCRIPT) or "Unknown"

        url = None
        domain = None
        if is_browser(app_name):
            script = next((s for key, s in BROWSER_URL_SCRIPTS.items() if key in app_name), None)
            if script:
                url = await self._osascript(script)
            if url:
                domain = domain_from_url(url)

        if not domain:
            domain = domain_from_title(window_title, app_name)

        return ScreenshotMetadata(
            app_name=app_name,
            window_title=window_title,
            timestamp=datetime.now(),
            domain=domain,
            url=url,
        )


def get_metadata_provider() -> MetadataProvider:
    if sys.platform == "darwin":
        return MacMetadataProvider()
    return MetadataProvider()
