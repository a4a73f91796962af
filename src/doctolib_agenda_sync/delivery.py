from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import requests

from .models import AppointmentRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryReport:
    ok: bool
    count: int
    status_code: Optional[int] = None
    body: str = ""
    error: str = ""


def deliverable(records: Iterable[AppointmentRecord]) -> list[AppointmentRecord]:
    """Records whose phone number is usable (not empty, not a placeholder)."""
    return [r for r in records if r.is_deliverable]


def summarize(records: list[AppointmentRecord]) -> None:
    if not records:
        return
    width = max(len("patient"), *(len(r.patient) for r in records))
    dt_width = max(len("dateTime"), *(len(r.date_time) for r in records))
    logger.info("%-*s  %-*s  %s", width, "patient", dt_width, "dateTime", "phoneNumber")
    for r in records:
        logger.info("%-*s  %-*s  %s", width, r.patient, dt_width, r.date_time, r.phone_number)


class WebhookSink:
    """POSTs one JSON array of appointments to the configured webhook."""

    def __init__(self, url: str, *, timeout_seconds: int = 30, session: Optional[requests.Session] = None) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def deliver(self, records: list[AppointmentRecord]) -> DeliveryReport:
        payload = [r.to_payload() for r in records]
        logger.info("Sending %d appointments to webhook...", len(payload))
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            logger.error("An error occurred while sending the webhook: %s", e)
            return DeliveryReport(ok=False, count=len(payload), error=str(e))

        if 200 <= resp.status_code < 300:
            logger.info("Webhook sent successfully (status=%s).", resp.status_code)
            return DeliveryReport(ok=True, count=len(payload), status_code=resp.status_code)

        body = resp.text or ""
        logger.error("Failed to send webhook. Status: %s %s", resp.status_code, resp.reason or "")
        logger.error("Response body: %s", body)
        return DeliveryReport(ok=False, count=len(payload), status_code=resp.status_code, body=body)
