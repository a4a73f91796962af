from __future__ import annotations

import enum
import logging
import random
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .config import AppConfig
from .delivery import DeliveryReport, WebhookSink, deliverable, summarize
from .models import AppointmentRecord
from .portal.auth import ConsentPolicy, LoginCredentials, SessionAuthenticator
from .portal.debug import StepRecorder, save_debug
from .portal.extraction import AppointmentExtractor, PacingPolicy
from .portal.session import browser_session


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Any]]


class RunOutcome(str, enum.Enum):
    SUCCESS_WITH_DATA = "success_with_data"
    SUCCESS_EMPTY = "success_empty"
    SUCCESS_UNDELIVERABLE = "success_undeliverable"


@dataclass(frozen=True)
class RunReport:
    records: list[AppointmentRecord]
    deliverable: list[AppointmentRecord]
    delivery: Optional[DeliveryReport] = None
    outcome: RunOutcome = field(init=False)

    def __post_init__(self) -> None:
        if not self.records:
            outcome = RunOutcome.SUCCESS_EMPTY
        elif not self.deliverable:
            outcome = RunOutcome.SUCCESS_UNDELIVERABLE
        else:
            outcome = RunOutcome.SUCCESS_WITH_DATA
        object.__setattr__(self, "outcome", outcome)


def default_session_factory(cfg: AppConfig, *, fresh: Optional[bool] = None) -> SessionFactory:
    b = cfg.browser

    def factory() -> AbstractContextManager[Any]:
        return browser_session(
            user_data_dir=b.user_data_dir,
            fresh=b.clear_session if fresh is None else fresh,
            headless=b.headless,
            slow_mo_ms=b.slow_mo_ms,
            channel=b.channel,
            viewport_width=b.viewport_width,
            viewport_height=b.viewport_height,
        )

    return factory


def build_authenticator(cfg: AppConfig, *, steps: Optional[StepRecorder] = None) -> SessionAuthenticator:
    d = cfg.doctolib
    d.require_credentials()
    return SessionAuthenticator(
        creds=LoginCredentials(username=d.username, password=d.password, pin=d.pin),
        signin_url=d.signin_url,
        calendar_url_pattern=d.calendar_url_pattern,
        consent_policy=ConsentPolicy.ACCEPT if d.accept_cookies else ConsentPolicy.DECLINE,
        debug_dir=cfg.debug_dir,
        steps=steps,
    )


def build_extractor(
    cfg: AppConfig, *, rng: Optional[random.Random] = None, steps: Optional[StepRecorder] = None
) -> AppointmentExtractor:
    return AppointmentExtractor(
        pacing=PacingPolicy(base_ms=cfg.pacing.base_ms, jitter_ms=cfg.pacing.jitter_ms),
        rng=rng,
        steps=steps,
    )


def run_sync(
    cfg: AppConfig,
    *,
    session_factory: Optional[SessionFactory] = None,
    sink: Optional[WebhookSink] = None,
    dry_run: bool = False,
    steps: Optional[StepRecorder] = None,
    rng: Optional[random.Random] = None,
) -> RunReport:
    """
    Log in, read every appointment on the calendar, and POST the ones with a phone number.

    Authentication failures propagate (after the browser is closed). Delivery failures do not.
    """
    steps = steps or StepRecorder(debug_dir=cfg.debug_dir)
    session_factory = session_factory or default_session_factory(cfg)
    authenticator = build_authenticator(cfg, steps=steps)
    extractor = build_extractor(cfg, rng=rng, steps=steps)

    with session_factory() as page:
        try:
            authenticator.ensure_authenticated(page)
            records = extractor.extract_all(page)
        except Exception:
            logger.error("Unhandled error during login/extraction; capturing page state.")
            save_debug(page, debug_dir=cfg.debug_dir, name_prefix="critical_error")
            raise

    usable = deliverable(records)
    logger.info("Total appointments processed: %d", len(records))
    logger.info("Found %d appointments with valid phone numbers.", len(usable))

    if not usable:
        logger.info("No appointments with valid phone numbers were found in this run.")
        return RunReport(records=records, deliverable=usable)

    summarize(usable)
    if dry_run:
        logger.info("Dry run: not sending %d appointments to the webhook.", len(usable))
        return RunReport(records=records, deliverable=usable)

    if sink is None:
        sink = WebhookSink(cfg.webhook.url, timeout_seconds=cfg.webhook.timeout_seconds)
    report = sink.deliver(usable)
    return RunReport(records=records, deliverable=usable, delivery=report)
