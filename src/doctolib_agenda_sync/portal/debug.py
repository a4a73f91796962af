from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)


def save_debug(page: Any, *, debug_dir: str, name_prefix: str) -> None:
    """
    Save a full-page screenshot plus the page HTML for offline diagnosis.

    Never raises: this runs on failure paths where the page may already be gone.
    """
    try:
        out_dir = Path(debug_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        page.screenshot(path=str(out_dir / f"{name_prefix}.png"), full_page=True)
        (out_dir / f"{name_prefix}.html").write_text(page.content(), encoding="utf-8")
        logger.info("Saved debug capture %s/%s.*", out_dir, name_prefix)
    except Exception:
        logger.debug("Failed to save debug artifacts.", exc_info=True)


class StepRecorder:
    """
    If enabled, log numbered progress milestones and optionally save a screenshot per step.
    """

    def __init__(self, *, debug_dir: str = "data/debug", log_steps: bool = False, screenshots: bool = False) -> None:
        self.debug_dir = debug_dir
        self.log_steps = bool(log_steps or screenshots)
        self.screenshots = bool(screenshots)
        self.counter = 0

    def __call__(self, page: Any, name: str) -> None:
        if not self.log_steps:
            return

        self.counter += 1
        safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_")[:60] or "step"
        prefix = f"step_{self.counter:02d}_{safe}"

        logger.info("Step %02d %s (url=%s)", self.counter, name, getattr(page, "url", ""))

        if not self.screenshots:
            return

        try:
            out_dir = Path(self.debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(out_dir / f"{prefix}.png"), full_page=True)
        except Exception:
            logger.debug("Failed to save step screenshot (name=%s).", name, exc_info=True)
