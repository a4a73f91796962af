from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import pytest

from doctolib_agenda_sync.config import AppConfig, DoctolibConfig, PacingConfig, WebhookConfig
from doctolib_agenda_sync.delivery import DeliveryReport
from doctolib_agenda_sync.models import AppointmentRecord
from doctolib_agenda_sync.portal.auth import AuthenticationError, RequiredFieldMissingError
from doctolib_agenda_sync.portal.selectors import PortalSelectors
from doctolib_agenda_sync.runner import RunOutcome, run_sync
from fake_browser import FakeElement, FakePage


S = PortalSelectors()
CALENDAR = "https://pro.doctolib.fr/calendar/day/2026-10-19"


class CountingSession:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.opened = 0
        self.released = 0

    @contextmanager
    def __call__(self) -> Iterator[FakePage]:
        self.opened += 1
        try:
            yield self.page
        finally:
            self.released += 1


class FakeSink:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.batches: list[list[AppointmentRecord]] = []

    def deliver(self, records: list[AppointmentRecord]) -> DeliveryReport:
        self.batches.append(records)
        return DeliveryReport(ok=self.ok, count=len(records), status_code=200 if self.ok else 502)


def _cfg(tmp_path: Path) -> AppConfig:
    return AppConfig(
        doctolib=DoctolibConfig(password="pw"),
        webhook=WebhookConfig(url="https://hooks.example.test/appointments"),
        pacing=PacingConfig(base_ms=0, jitter_ms=0),
        debug_dir=str(tmp_path / "debug"),
    )


def _calendar_page(phones: list[Optional[str]]) -> FakePage:
    page = FakePage(CALENDAR)
    sidebar = FakeElement(visible=False)
    page.set(S.sidebar, sidebar)
    page.set(S.return_to_agenda, FakeElement(on_click=lambda _p: setattr(sidebar, "visible", False)))

    blocks = []
    for i, phone in enumerate(phones):
        def open_sidebar(p: FakePage, phone: Optional[str] = phone) -> None:
            sidebar.visible = True
            p.elements.pop(S.phone_link, None)
            if phone:
                p.set(S.phone_link, FakeElement(attrs={"href": f"tel:{phone}"}))

        children = {f"[{S.appointment_last_name_attr}]": [FakeElement(attrs={S.appointment_last_name_attr: f"P{i}"})]}
        blocks.append(FakeElement(children=children, on_click=open_sidebar))
    if blocks:
        page.set(S.appointment_block, *blocks)
    return page


def test_success_with_data_delivers_once_and_releases_session(tmp_path: Path) -> None:
    session = CountingSession(_calendar_page(["0611", None, "0633"]))
    sink = FakeSink()

    report = run_sync(_cfg(tmp_path), session_factory=session, sink=sink)

    assert report.outcome is RunOutcome.SUCCESS_WITH_DATA
    assert len(report.records) == 3
    assert [r.phone_number for r in report.deliverable] == ["0611", "0633"]
    assert len(sink.batches) == 1
    assert report.delivery is not None and report.delivery.ok
    assert (session.opened, session.released) == (1, 1)


def test_fatal_auth_error_propagates_after_release(tmp_path: Path) -> None:
    session = CountingSession(FakePage())  # sign-in page without a password field
    sink = FakeSink()

    with pytest.raises(RequiredFieldMissingError) as exc:
        run_sync(_cfg(tmp_path), session_factory=session, sink=sink)

    assert isinstance(exc.value, AuthenticationError)
    assert (session.opened, session.released) == (1, 1)
    assert sink.batches == []
    assert (tmp_path / "debug" / "critical_error.png").exists()


def test_empty_calendar_is_success_without_delivery(tmp_path: Path) -> None:
    session = CountingSession(_calendar_page([]))
    sink = FakeSink()

    report = run_sync(_cfg(tmp_path), session_factory=session, sink=sink)

    assert report.outcome is RunOutcome.SUCCESS_EMPTY
    assert report.records == []
    assert report.delivery is None
    assert sink.batches == []
    assert session.released == 1


def test_no_usable_phone_numbers_skips_delivery(tmp_path: Path) -> None:
    session = CountingSession(_calendar_page([None, None]))
    sink = FakeSink()

    report = run_sync(_cfg(tmp_path), session_factory=session, sink=sink)

    assert report.outcome is RunOutcome.SUCCESS_UNDELIVERABLE
    assert len(report.records) == 2
    assert sink.batches == []


def test_delivery_failure_does_not_fail_the_run(tmp_path: Path) -> None:
    session = CountingSession(_calendar_page(["0611"]))

    report = run_sync(_cfg(tmp_path), session_factory=session, sink=FakeSink(ok=False))

    assert report.outcome is RunOutcome.SUCCESS_WITH_DATA
    assert report.delivery is not None and report.delivery.ok is False


def test_dry_run_never_calls_the_sink(tmp_path: Path) -> None:
    sink = FakeSink()

    report = run_sync(_cfg(tmp_path), session_factory=CountingSession(_calendar_page(["0611"])), sink=sink, dry_run=True)

    assert report.outcome is RunOutcome.SUCCESS_WITH_DATA
    assert report.delivery is None
    assert sink.batches == []


def test_missing_credentials_rejected_before_opening_a_session(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path).model_copy(update={"doctolib": DoctolibConfig()})
    session = CountingSession(_calendar_page(["0611"]))

    with pytest.raises(ValueError):
        run_sync(cfg, session_factory=session, sink=FakeSink())

    assert session.opened == 0
