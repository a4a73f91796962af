from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from ..models import PHONE_NOT_FOUND, UNKNOWN_DATE, UNKNOWN_TIME, AppointmentRecord
from .debug import StepRecorder
from .locator import CandidateDescriptor, Strategy, first_value, try_resolve
from .selectors import PortalSelectors, PortalTimeouts


logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_tel_href(href: Optional[str]) -> str:
    """`tel:+33 6 12 34 56 78` -> `+33612345678`."""
    value = (href or "").strip()
    if value[:4].lower() == "tel:":
        value = value[4:]
    return _WHITESPACE_RE.sub("", value)


@dataclass(frozen=True)
class PacingPolicy:
    """Pause between appointments: `base_ms` plus a uniform jitter in `[0, jitter_ms)`."""

    base_ms: int = 1000
    jitter_ms: int = 500

    def delay_ms(self, rng: random.Random) -> float:
        return self.base_ms + rng.random() * self.jitter_ms


class AppointmentExtractor:
    """
    Walks the appointment blocks on the calendar, one at a time, through the detail sidebar.

    The number of blocks is read once before the loop. If the calendar re-renders mid-run
    (appointment added/cancelled), index-based access may skip or repeat a block.
    """

    def __init__(
        self,
        *,
        selectors: Optional[PortalSelectors] = None,
        timeouts: Optional[PortalTimeouts] = None,
        pacing: Optional[PacingPolicy] = None,
        rng: Optional[random.Random] = None,
        steps: Optional[StepRecorder] = None,
    ) -> None:
        self.selectors = selectors or PortalSelectors()
        self.timeouts = timeouts or PortalTimeouts()
        self.pacing = pacing or PacingPolicy()
        self.rng = rng or random.Random()
        self._steps = steps or StepRecorder()

        s, t = self.selectors, self.timeouts
        self._admin_section = Strategy.of(
            "Infos administratives", *s.admin_section_buttons, timeout_ms=t.admin_section_ms
        )
        self._phone = Strategy(
            name="phone number",
            candidates=tuple(CandidateDescriptor(sel) for sel in (*s.phone_inputs, s.phone_link)),
            default_timeout_ms=t.phone_field_ms,
        )

    def discover(self, page: Page) -> int:
        blocks = page.locator(self.selectors.appointment_block)
        try:
            blocks.first.wait_for(state="visible", timeout=self.timeouts.appointments_visible_ms)
        except PlaywrightError:
            logger.warning("No appointment elements found on the calendar. The day might be empty.")
            return 0
        return blocks.count()

    def extract_all(self, page: Page) -> list[AppointmentRecord]:
        total = self.discover(page)
        records: list[AppointmentRecord] = []
        if total == 0:
            return records

        logger.info("Found %d appointments to process.", total)
        blocks = page.locator(self.selectors.appointment_block)
        for i in range(total):
            records.append(self._process(page, blocks.nth(i), index=i, total=total))
            page.wait_for_timeout(self.pacing.delay_ms(self.rng))
        return records

    # --- per appointment ---

    def _process(self, page: Page, block: Any, *, index: int, total: int) -> AppointmentRecord:
        s = self.selectors
        last_name = self._block_attribute(block, s.appointment_last_name_attr) or ""
        first_name = self._block_attribute(block, s.appointment_first_name_attr) or ""
        patient = f"{last_name} {first_name}".strip()
        appointment_time = self._block_attribute(block, s.appointment_time_attr) or UNKNOWN_TIME

        logger.info("Processing appointment %d/%d: %r at %s", index + 1, total, patient, appointment_time)

        record: Optional[AppointmentRecord] = None
        try:
            block.click()
            sidebar = page.locator(s.sidebar)
            sidebar.wait_for(state="visible", timeout=self.timeouts.sidebar_open_ms)
            self._steps(page, f"appointment_{index + 1}_sidebar_open")

            appointment_date = self._read_date(sidebar, patient)
            self._expand_admin_section(page, sidebar)
            phone = self._read_phone(sidebar, patient)

            record = AppointmentRecord(
                patient=patient,
                date_time=f"{appointment_date} {appointment_time}".strip(),
                phone_number=phone,
            )

            page.locator(s.return_to_agenda).click()
            sidebar.wait_for(state="hidden", timeout=self.timeouts.sidebar_close_ms)
            logger.debug("Sidebar closed.")
        except Exception:
            logger.exception("Error processing appointment %d (%r).", index + 1, patient)
            self._recover(page)
            if record is None:
                record = AppointmentRecord.failed(patient)
        return record

    def _block_attribute(self, block: Any, attribute: str) -> Optional[str]:
        try:
            return block.locator(f"[{attribute}]").first.get_attribute(
                attribute, timeout=self.timeouts.block_attribute_ms
            )
        except PlaywrightError:
            logger.debug("Attribute %s missing on appointment block.", attribute)
            return None

    def _read_date(self, sidebar: Any, patient: str) -> str:
        try:
            date_input = sidebar.locator(self.selectors.sidebar_date_input).first
            date_input.wait_for(state="visible", timeout=self.timeouts.date_input_ms)
            value = (date_input.get_attribute("value") or "").strip()
        except PlaywrightError:
            value = ""
        if not value:
            logger.warning("Could not read the full date for %r.", patient)
            return UNKNOWN_DATE
        return value

    def _expand_admin_section(self, page: Page, sidebar: Any) -> None:
        found = try_resolve(sidebar, self._admin_section)
        if found is None:
            logger.warning("'Infos administratives' button not found; phone number may already be visible.")
            return
        try:
            found.locator.click()
        except PlaywrightError as e:
            logger.warning("Could not expand 'Infos administratives' (%s); reading phone anyway.", e)
            return
        page.wait_for_timeout(self.timeouts.admin_section_settle_ms)

    def _read_phone(self, sidebar: Any, patient: str) -> str:
        def read(loc: Any, candidate: CandidateDescriptor) -> Optional[str]:
            if candidate.selector == self.selectors.phone_link:
                return normalize_tel_href(loc.get_attribute("href"))
            return (loc.get_attribute("value") or "").strip()

        found = first_value(sidebar, self._phone, read)
        if found is None:
            logger.warning("Could not find a phone number for %r.", patient)
            return PHONE_NOT_FOUND
        candidate, phone = found
        logger.info("Phone number found via %s.", candidate.selector)
        return phone

    def _recover(self, page: Page) -> None:
        try:
            page.keyboard.press("Escape")
        except PlaywrightError:
            logger.debug("Escape failed during recovery.", exc_info=True)
