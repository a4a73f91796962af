from __future__ import annotations

import argparse
import logging
import os
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import AppConfig, load_config
from .logging_config import configure_logging
from .portal.debug import StepRecorder
from .portal.session import clear_profile
from .runner import default_session_factory, run_sync
from .util.debug_bundle import create_debug_bundle


logger = logging.getLogger("doctolib_agenda_sync")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="doctolib_agenda_sync")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Log into Doctolib Pro, read today's agenda and send phone numbers to the webhook")
    run.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    run.add_argument("--dry-run", action="store_true", help="Do not call the webhook; log the results instead")
    mode = run.add_mutually_exclusive_group()
    mode.add_argument("--headful", action="store_true", help="Force a visible browser window")
    mode.add_argument("--headless", action="store_true", help="Force a headless browser (no manual 2FA possible)")
    run.add_argument(
        "--fresh-session",
        action="store_true",
        help="Clear the persistent browser profile first (forces a full login).",
    )
    run.add_argument("--slowmo-ms", type=int, default=None, help="Playwright slow motion in milliseconds.")
    run.add_argument("--log-steps", action="store_true", help="Log numbered progress steps.")
    run.add_argument("--step-debug", action="store_true", help="Save step-by-step screenshots under the debug dir.")

    clear = sub.add_parser("clear-profile", help="Delete the persistent browser profile (logs the session out)")
    clear.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")

    show = sub.add_parser("show-config", help="Print the effective configuration (secrets hidden)")
    show.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")

    return p


def _apply_run_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    browser_updates: dict = {}
    if args.headful:
        browser_updates["headless"] = False
    if args.headless:
        browser_updates["headless"] = True
    if args.slowmo_ms is not None:
        browser_updates["slow_mo_ms"] = args.slowmo_ms
    if args.fresh_session:
        browser_updates["clear_session"] = True
    if not browser_updates:
        return cfg
    return cfg.model_copy(update={"browser": cfg.browser.model_copy(update=browser_updates)})


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    cfg = load_config(args.config)
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)

    if args.cmd == "show-config":
        print(cfg.model_dump_json(indent=2, exclude={"doctolib": {"password", "pin"}}))
        return 0

    if args.cmd == "clear-profile":
        clear_profile(cfg.browser.user_data_dir)
        return 0

    if args.cmd == "run":
        cfg = _apply_run_overrides(cfg, args)
        try:
            cfg.doctolib.require_credentials()
        except ValueError as e:
            raise SystemExit(f"{e}. Set DOCTOLIB_PASSWORD or DOCTOLIB_PIN in .env.") from e
        if not args.dry_run and not cfg.webhook.url:
            raise SystemExit("No webhook configured. Set WEBHOOK_URL in .env (or webhook.url in YAML), or use --dry-run.")
        if cfg.browser.headless:
            logger.warning("Running headless: a second-factor prompt cannot be completed by hand.")

        logger.info("Starting run (dry_run=%s)", args.dry_run)
        t0 = time.time()
        try:
            report = run_sync(
                cfg,
                session_factory=default_session_factory(cfg),
                dry_run=args.dry_run,
                steps=StepRecorder(debug_dir=cfg.debug_dir, log_steps=args.log_steps, screenshots=args.step_debug),
            )
        except Exception:
            logger.error("Run failed (seconds=%.2f)", time.time() - t0)
            try:
                bundle = create_debug_bundle(
                    debug_dir=cfg.debug_dir,
                    log_file=cfg.logging.file_path or "data/agenda_sync.log",
                    out_dir=str(Path(cfg.debug_dir).parent),
                )
                logger.error("Wrote debug bundle: %s", bundle)
            except Exception:
                logger.debug("Failed to create debug bundle.", exc_info=True)
            raise

        delivered = "skipped"
        if report.delivery is not None:
            delivered = "ok" if report.delivery.ok else "failed"
        logger.info(
            "Run finished (outcome=%s records=%d deliverable=%d delivery=%s seconds=%.2f)",
            report.outcome.value,
            len(report.records),
            len(report.deliverable),
            delivered,
            time.time() - t0,
        )
        return 0

    raise SystemExit(f"Unknown command: {args.cmd}")
