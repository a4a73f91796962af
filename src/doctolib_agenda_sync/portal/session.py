from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from playwright.sync_api import Page, sync_playwright


logger = logging.getLogger(__name__)


def clear_profile(user_data_dir: str) -> bool:
    """
    Delete the persistent browser profile so the next launch starts logged out.

    Best-effort: a locked/undeletable profile only produces a warning.
    """
    path = Path(user_data_dir)
    if not path.exists():
        logger.info("No existing browser profile to clear at %s.", path)
        return False
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning("Could not clear browser profile %s; proceeding anyway. (%s)", path, e)
        return False
    logger.info("Cleared browser profile at %s.", path)
    return True


@contextmanager
def browser_session(
    *,
    user_data_dir: str,
    fresh: bool = False,
    headless: bool = False,
    slow_mo_ms: int = 100,
    channel: str = "chrome",
    viewport_width: int = 1400,
    viewport_height: int = 900,
) -> Iterator[Page]:
    """
    Yield a page from a persistent Chromium profile; the context is closed on every exit path.
    """
    if fresh:
        clear_profile(user_data_dir)
    Path(user_data_dir).mkdir(parents=True, exist_ok=True)

    with sync_playwright() as p:
        launch_kwargs: dict = {
            "headless": headless,
            "slow_mo": int(slow_mo_ms or 0),
            "viewport": {"width": viewport_width, "height": viewport_height},
        }
        logger.info("Launching browser with persistent profile: %s", user_data_dir)
        try:
            ctx = p.chromium.launch_persistent_context(user_data_dir, channel=channel or None, **launch_kwargs)
        except Exception as e:
            msg = str(e)
            if not channel or ("is not found" not in msg and "Executable doesn't exist" not in msg):
                raise
            logger.warning(
                "Browser channel %r not installed; falling back to Playwright's bundled Chromium. (%s)",
                channel,
                msg.splitlines()[0] if msg else msg,
            )
            ctx = p.chromium.launch_persistent_context(user_data_dir, **launch_kwargs)

        try:
            if ctx.pages:
                page = ctx.pages[0]
                logger.debug("Using existing page from persistent context.")
            else:
                page = ctx.new_page()
            yield page
        finally:
            ctx.close()
            logger.info("Browser closed.")
