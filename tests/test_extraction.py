from __future__ import annotations

import random
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError

from doctolib_agenda_sync.models import ERROR_PROCESSING, PHONE_NOT_FOUND, UNKNOWN_DATE, UNKNOWN_TIME
from doctolib_agenda_sync.portal.extraction import AppointmentExtractor, PacingPolicy, normalize_tel_href
from doctolib_agenda_sync.portal.selectors import PortalSelectors
from fake_browser import FakeElement, FakePage


S = PortalSelectors()
_PER_ITEM_SELECTORS = (S.sidebar_date_input, S.phone_link, *S.phone_inputs, *S.admin_section_buttons)


def _appointment(
    *,
    last: Optional[str] = "DUPONT",
    first: Optional[str] = "Marie",
    time: Optional[str] = "09:30",
    date: Optional[str] = "19/10/2026",
    fields: Optional[dict[str, FakeElement]] = None,
    click_error: Optional[Exception] = None,
) -> dict[str, Any]:
    return {"last": last, "first": first, "time": time, "date": date, "fields": fields or {}, "click_error": click_error}


def _calendar(page: FakePage, appointments: list[dict[str, Any]], *, closes: bool = True) -> FakeElement:
    """Register calendar blocks whose click opens the shared sidebar with per-appointment fields."""
    sidebar = FakeElement(visible=False)
    page.set(S.sidebar, sidebar)

    def close(_page: FakePage) -> None:
        sidebar.visible = False

    page.set(S.return_to_agenda, FakeElement(on_click=close if closes else None))
    page.on_key = lambda _page, key: close(_page) if key == "Escape" else None

    blocks = []
    for appt in appointments:
        def open_sidebar(p: FakePage, appt: dict[str, Any] = appt) -> None:
            sidebar.visible = True
            for sel in _PER_ITEM_SELECTORS:
                p.elements.pop(sel, None)
            if appt["date"] is not None:
                p.set(S.sidebar_date_input, FakeElement(attrs={"value": appt["date"]}))
            for sel, el in appt["fields"].items():
                p.set(sel, el)

        children = {}
        for attr, key in (
            (S.appointment_last_name_attr, "last"),
            (S.appointment_first_name_attr, "first"),
            (S.appointment_time_attr, "time"),
        ):
            if appt[key] is not None:
                children[f"[{attr}]"] = [FakeElement(attrs={attr: appt[key]})]
        blocks.append(FakeElement(children=children, on_click=open_sidebar, click_error=appt["click_error"]))

    page.set(S.appointment_block, *blocks)
    return sidebar


def _extractor() -> AppointmentExtractor:
    return AppointmentExtractor(rng=random.Random(0))


def test_normalize_tel_href() -> None:
    assert normalize_tel_href("tel:+33612345678") == "+33612345678"
    assert normalize_tel_href("tel:+33 6 12 34 56 78") == "+33612345678"
    assert normalize_tel_href(None) == ""


def test_tel_link_used_when_no_phone_input_exists() -> None:
    page = FakePage()
    _calendar(page, [_appointment(fields={S.phone_link: FakeElement(attrs={"href": "tel:+33612345678"})})])

    records = _extractor().extract_all(page)

    assert len(records) == 1
    assert records[0].phone_number == "+33612345678"
    assert records[0].patient == "DUPONT Marie"
    assert records[0].date_time == "19/10/2026 09:30"


def test_phone_input_preferred_and_admin_section_expanded() -> None:
    page = FakePage()
    admin = FakeElement()
    _calendar(
        page,
        [
            _appointment(
                fields={
                    'button:has-text("Infos administratives")': admin,
                    "input#phone_number": FakeElement(attrs={"value": " 06 12 34 56 78 "}),
                    S.phone_link: FakeElement(attrs={"href": "tel:0000"}),
                }
            )
        ],
    )

    records = _extractor().extract_all(page)

    assert records[0].phone_number == "06 12 34 56 78"
    assert admin.clicks == 1


def test_failed_admin_expand_still_reads_phone() -> None:
    page = FakePage()
    admin = FakeElement(click_error=PlaywrightError("intercepted"))
    _calendar(
        page,
        [
            _appointment(
                fields={
                    'button:has-text("Infos administratives")': admin,
                    S.phone_link: FakeElement(attrs={"href": "tel:0611"}),
                }
            )
        ],
    )

    records = _extractor().extract_all(page)

    assert admin.clicks == 1
    assert records[0].phone_number == "0611"
    assert records[0].date_time == "19/10/2026 09:30"
    assert page.keys == []


def test_empty_phone_input_falls_through_to_later_candidates() -> None:
    page = FakePage()
    _calendar(
        page,
        [
            _appointment(
                fields={
                    "input#phone_number": FakeElement(attrs={"value": ""}),
                    'input[type="tel"]': FakeElement(attrs={"value": "0611223344"}),
                }
            )
        ],
    )

    assert _extractor().extract_all(page)[0].phone_number == "0611223344"


def test_missing_fields_use_placeholders() -> None:
    page = FakePage()
    _calendar(page, [_appointment(last=None, first=None, time=None, date=None)])

    record = _extractor().extract_all(page)[0]

    assert record.patient == ""
    assert record.date_time == f"{UNKNOWN_DATE} {UNKNOWN_TIME}"
    assert record.phone_number == PHONE_NOT_FOUND
    assert not record.is_deliverable


def test_failing_item_is_recorded_and_loop_continues() -> None:
    page = FakePage()
    tel = lambda n: {S.phone_link: FakeElement(attrs={"href": f"tel:06000000{n}"})}  # noqa: E731
    _calendar(
        page,
        [
            _appointment(last="A", first="One", fields=tel(1)),
            _appointment(last="B", first="Two", click_error=RuntimeError("element detached")),
            _appointment(last="C", first="Three", fields=tel(3)),
        ],
    )

    records = _extractor().extract_all(page)

    assert len(records) == 3
    assert records[1].patient == "B Two"
    assert records[1].date_time == ERROR_PROCESSING
    assert records[1].phone_number == ERROR_PROCESSING
    assert records[0].phone_number == "0600000001"
    assert records[2].phone_number == "0600000003"
    assert records[2].date_time == "19/10/2026 09:30"
    assert page.keys == ["Escape"]


def test_sidebar_that_will_not_close_keeps_extracted_record() -> None:
    page = FakePage()
    _calendar(
        page,
        [
            _appointment(fields={S.phone_link: FakeElement(attrs={"href": "tel:0611"})}),
            _appointment(last="X", first="Y", fields={S.phone_link: FakeElement(attrs={"href": "tel:0622"})}),
        ],
        closes=False,
    )

    records = _extractor().extract_all(page)

    assert [r.phone_number for r in records] == ["0611", "0622"]
    assert page.keys == ["Escape", "Escape"]


def test_empty_calendar_is_a_no_op() -> None:
    page = FakePage()

    assert _extractor().discover(page) == 0
    assert _extractor().extract_all(page) == []
    assert page.clicks == []


def test_one_pause_per_appointment_within_pacing_bounds() -> None:
    page = FakePage()
    _calendar(page, [_appointment(), _appointment()])
    extractor = AppointmentExtractor(pacing=PacingPolicy(base_ms=1000, jitter_ms=500), rng=random.Random(1))

    extractor.extract_all(page)

    pauses = [w for w in page.waits if 1000 <= w < 1500]
    assert len(pauses) == 2


def test_pacing_delay_uses_base_plus_jitter() -> None:
    class HalfRng(random.Random):
        def random(self) -> float:
            return 0.5

    assert PacingPolicy(base_ms=1000, jitter_ms=500).delay_ms(HalfRng()) == 1250
    assert PacingPolicy(base_ms=0, jitter_ms=0).delay_ms(HalfRng()) == 0


def test_extraction_is_repeatable_on_a_static_calendar() -> None:
    page = FakePage()
    _calendar(
        page,
        [
            _appointment(fields={S.phone_link: FakeElement(attrs={"href": "tel:0611"})}),
            _appointment(last="B", first=None, time="10:00"),
        ],
    )

    first = _extractor().extract_all(page)
    second = _extractor().extract_all(page)

    assert first == second
    assert second[1].patient == "B"
