from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from .debug import StepRecorder, save_debug
from .locator import CandidateDescriptor, Strategy, StrategyExhaustedError, resolve, try_resolve
from .selectors import PortalSelectors, PortalTimeouts


logger = logging.getLogger(__name__)

PIN_LENGTH = 4


class AuthenticationError(RuntimeError):
    """Base class for failures that abort the whole run."""


class InvalidPinError(AuthenticationError, ValueError):
    pass


class RequiredFieldMissingError(AuthenticationError):
    pass


class SubmitControlNotFoundError(AuthenticationError):
    def __init__(self, shape: "AuthFlowShape") -> None:
        self.shape = shape
        super().__init__(f"Could not find the submit button for the {shape.value} login form.")


class LoginNavigationTimeoutError(AuthenticationError, TimeoutError):
    pass


class AuthState(str, enum.Enum):
    UNKNOWN = "unknown"
    UNAUTHENTICATED = "unauthenticated"
    ALREADY_AUTHENTICATED = "already_authenticated"
    AUTHENTICATED = "authenticated"


class AuthFlowShape(str, enum.Enum):
    FULL_CREDENTIALS = "full_credentials"
    PASSWORD_ONLY = "password_only"
    NUMERIC_CODE = "numeric_code"


class ConsentPolicy(str, enum.Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


@dataclass(frozen=True)
class LoginCredentials:
    username: str = ""
    password: str = field(default="", repr=False)
    pin: str = field(default="", repr=False)


@dataclass(frozen=True)
class LoginForm:
    """The login form as currently rendered. Inputs are resolved locators (None when unused)."""

    shape: AuthFlowShape
    password_input: Any = field(default=None, repr=False)
    username_input: Any = field(default=None, repr=False)


class SessionAuthenticator:
    """
    Drives a Doctolib Pro page to the authenticated calendar.

    The sign-in page can show one of three forms (PIN pad for a remembered device, password
    only for a remembered account, or the full username/password form), optionally preceded by a
    cookie banner and followed by a second-factor confirmation and an identity (CPS) modal.
    """

    def __init__(
        self,
        *,
        creds: LoginCredentials,
        signin_url: str,
        calendar_url_pattern: str,
        consent_policy: ConsentPolicy = ConsentPolicy.DECLINE,
        selectors: Optional[PortalSelectors] = None,
        timeouts: Optional[PortalTimeouts] = None,
        debug_dir: str = "data/debug",
        steps: Optional[StepRecorder] = None,
    ) -> None:
        self.creds = creds
        self.signin_url = signin_url
        self.calendar_re = re.compile(calendar_url_pattern, re.I)
        self.consent_policy = consent_policy
        self.selectors = selectors or PortalSelectors()
        self.timeouts = timeouts or PortalTimeouts()
        self.debug_dir = debug_dir
        self._steps = steps or StepRecorder(debug_dir=debug_dir)

        s, t = self.selectors, self.timeouts
        self._consent_overlay = Strategy.of("consent overlay", *s.consent_overlays, timeout_ms=t.consent_overlay_ms)
        self._consent_accept = Strategy.of("consent accept", *s.consent_accept_buttons, timeout_ms=t.consent_button_ms)
        self._consent_decline = Strategy.of(
            "consent decline", *s.consent_decline_buttons, timeout_ms=t.consent_button_ms
        )
        self._username_alternatives = Strategy.of(
            "username alternatives", *s.username_alternatives, timeout_ms=t.username_alternative_ms
        )
        self._submit = {
            AuthFlowShape.NUMERIC_CODE: Strategy.of("pin submit", *s.pin_submit_buttons, timeout_ms=t.submit_button_ms),
            AuthFlowShape.FULL_CREDENTIALS: Strategy.of(
                "login submit", *s.full_login_submit_buttons, timeout_ms=t.submit_button_ms
            ),
            AuthFlowShape.PASSWORD_ONLY: Strategy.of(
                "password-only submit", *s.password_only_submit_buttons, timeout_ms=t.submit_button_ms
            ),
        }
        self._second_factor = Strategy.of("2FA confirm", *s.second_factor_buttons, timeout_ms=t.second_factor_ms)
        self._identity_overlay = Strategy.of(
            "identity overlay", *s.identity_overlays, timeout_ms=t.identity_overlay_ms
        )
        self._identity_close = Strategy.of("identity close", *s.identity_close_buttons, timeout_ms=t.identity_close_ms)

    # --- state machine ---

    def on_calendar(self, page: Page) -> bool:
        return bool(self.calendar_re.search(page.url or ""))

    def probe_state(self, page: Page) -> AuthState:
        return AuthState.ALREADY_AUTHENTICATED if self.on_calendar(page) else AuthState.UNAUTHENTICATED

    def ensure_authenticated(self, page: Page) -> AuthState:
        state = self.probe_state(page)
        logger.info("Auth state on entry: %s (url=%s)", state.value, page.url)

        if state is AuthState.ALREADY_AUTHENTICATED:
            page.reload(wait_until="networkidle")
            self._steps(page, "already_on_calendar_reloaded")
            self.dismiss_identity_overlay(page)
            return state

        page.goto(self.signin_url, wait_until="domcontentloaded", timeout=self.timeouts.signin_navigation_ms)
        self._steps(page, "after_goto_signin")
        if self.on_calendar(page):
            logger.info("Sign-in redirected straight to the calendar; stored session is still valid.")
            self.dismiss_identity_overlay(page)
            return AuthState.ALREADY_AUTHENTICATED

        self.dismiss_consent_overlay(page)
        self._steps(page, "after_consent")

        form = self.detect_login_form(page)
        self._steps(page, f"login_form_{form.shape.value}")
        self.submit_credentials(page, form)
        self._steps(page, "credentials_submitted")

        self.confirm_second_factor(page)
        self.wait_for_landing(page)
        self._steps(page, "landed_on_calendar")
        self.dismiss_identity_overlay(page)
        return AuthState.AUTHENTICATED

    # --- overlays ---

    def dismiss_consent_overlay(self, page: Page) -> bool:
        found = try_resolve(page, self._consent_overlay)
        if found is None:
            logger.info("No cookie consent popup found.")
            return False
        logger.info("Cookie consent popup found (%s).", found.candidate.selector)

        if self.consent_policy is ConsentPolicy.ACCEPT:
            button = try_resolve(page, self._consent_accept)
        else:
            button = try_resolve(page, self._consent_decline)

        clicked = False
        if button is not None:
            logger.info("Dismissing cookie popup (%s) via %s.", self.consent_policy.value, button.candidate.selector)
            clicked = self._click_optional(button.locator, "cookie popup button")
        else:
            logger.warning("No %s control on the cookie popup; pressing Escape.", self.consent_policy.value)
        if not clicked:
            page.keyboard.press("Escape")

        page.wait_for_timeout(self.timeouts.consent_settle_ms)
        return True

    def dismiss_identity_overlay(self, page: Page) -> bool:
        found = try_resolve(page, self._identity_overlay)
        if found is None:
            logger.info("No identity verification modal found.")
            return False
        logger.info("Identity verification modal found (%s).", found.candidate.selector)

        close = try_resolve(page, self._identity_close)
        clicked = False
        if close is not None:
            clicked = self._click_optional(close.locator, "identity modal close button")
            if clicked:
                logger.info("Identity verification modal closed via %s.", close.candidate.selector)
        else:
            logger.info("Close button not found on identity modal; pressing Escape.")
        if not clicked:
            page.keyboard.press("Escape")

        page.wait_for_timeout(self.timeouts.identity_settle_ms)
        return True

    # --- login form ---

    def detect_login_form(self, page: Page) -> LoginForm:
        s, t = self.selectors, self.timeouts

        pins = page.locator(s.pin_inputs)
        try:
            pins.first.wait_for(state="visible", timeout=t.pin_probe_ms)
            pin_count = pins.count()
        except PlaywrightError:
            pin_count = 0
        if pin_count >= PIN_LENGTH:
            logger.info("PIN login form detected (%d inputs).", pin_count)
            return LoginForm(shape=AuthFlowShape.NUMERIC_CODE)

        password = Strategy(
            name="password input",
            candidates=(CandidateDescriptor(s.password_input, t.password_input_ms),),
        )
        try:
            password_input = resolve(page, password).locator
        except StrategyExhaustedError as e:
            raise self._fatal(
                page, "login_password_not_visible", RequiredFieldMissingError("Password field not found on sign-in page.")
            ) from e

        username = try_resolve(
            page,
            Strategy(name="username input", candidates=(CandidateDescriptor(s.username_input, t.username_input_ms),)),
        )
        if username is None:
            username = try_resolve(page, self._username_alternatives)

        if username is not None:
            logger.info("Username field found (%s); full login required.", username.candidate.selector)
            return LoginForm(
                shape=AuthFlowShape.FULL_CREDENTIALS,
                password_input=password_input,
                username_input=username.locator,
            )

        logger.info("Username field not found; password-only login detected.")
        return LoginForm(shape=AuthFlowShape.PASSWORD_ONLY, password_input=password_input)

    def submit_credentials(self, page: Page, form: LoginForm) -> None:
        if form.shape is AuthFlowShape.NUMERIC_CODE:
            self._submit_pin(page)
        elif form.shape is AuthFlowShape.FULL_CREDENTIALS:
            self._submit_full(page, form)
        else:
            self._submit_password_only(page, form)

    def _submit_pin(self, page: Page) -> None:
        pin = self.creds.pin or ""
        if len(pin) != PIN_LENGTH:
            raise self._fatal(
                page, "login_invalid_pin", InvalidPinError(f"PIN must be exactly {PIN_LENGTH} digits (got {len(pin)}).")
            )

        for i, digit in enumerate(pin):
            pin_input = page.locator(self.selectors.pin_input_template.format(index=i))
            try:
                pin_input.wait_for(state="visible", timeout=self.timeouts.pin_input_ms)
                pin_input.fill(digit)
            except PlaywrightError as e:
                raise self._fatal(
                    page, "login_pin_input_missing", RequiredFieldMissingError(f"PIN input {i} not usable: {e}")
                ) from e
            logger.debug("Entered PIN digit %d/%d", i + 1, PIN_LENGTH)

        self._submit_button(page, AuthFlowShape.NUMERIC_CODE).click()

    def _submit_full(self, page: Page, form: LoginForm) -> None:
        submit = self._submit_button(page, AuthFlowShape.FULL_CREDENTIALS)
        form.username_input.fill(self.creds.username)
        form.password_input.fill(self.creds.password)
        submit.click()

    def _submit_password_only(self, page: Page, form: LoginForm) -> None:
        form.password_input.fill(self.creds.password)
        self._submit_button(page, AuthFlowShape.PASSWORD_ONLY).click()

    def _submit_button(self, page: Page, shape: AuthFlowShape) -> Any:
        try:
            found = resolve(page, self._submit[shape])
        except StrategyExhaustedError as e:
            raise self._fatal(page, f"login_submit_missing_{shape.value}", SubmitControlNotFoundError(shape)) from e
        logger.info("Submit button found with selector: %s", found.candidate.selector)
        return found.locator

    # --- post-login ---

    def confirm_second_factor(self, page: Page) -> bool:
        found = try_resolve(page, self._second_factor)
        if found is None:
            logger.info("No 2FA 'Valider' button found; assuming no second factor.")
            return False
        page.wait_for_timeout(self.timeouts.second_factor_settle_ms)
        if not self._click_optional(found.locator, "2FA 'Valider' button"):
            return False
        logger.info("2FA 'Valider' button clicked (%s).", found.candidate.selector)
        return True

    def wait_for_landing(self, page: Page) -> None:
        logger.info(
            "Waiting up to %.0fs for the calendar (complete any second factor in the browser).",
            self.timeouts.landing_navigation_ms / 1000,
        )
        try:
            page.wait_for_url(self.calendar_re, wait_until="networkidle", timeout=self.timeouts.landing_navigation_ms)
        except PlaywrightError as e:
            raise self._fatal(
                page,
                "login_or_agenda_navigation_error",
                LoginNavigationTimeoutError("Failed to complete login or navigate to the agenda."),
            ) from e
        logger.info("Reached agenda page (url=%s).", page.url)

    @staticmethod
    def _click_optional(locator: Any, label: str) -> bool:
        # Optional controls can detach or be covered mid-click; the caller degrades instead of failing.
        try:
            locator.click()
            return True
        except PlaywrightError as e:
            logger.warning("Clicking %s failed: %s", label, e)
            return False

    def _fatal(self, page: Page, name_prefix: str, exc: AuthenticationError) -> AuthenticationError:
        logger.error("%s", exc)
        save_debug(page, debug_dir=self.debug_dir, name_prefix=name_prefix)
        return exc
