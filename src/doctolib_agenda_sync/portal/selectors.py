from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PortalSelectors:
    """
    Doctolib Pro is a SPA whose markup drifts between releases and between appointment types.
    Keep all UI selectors/text hooks here for easy maintenance. Tuples are tried in order.
    """

    # Consent overlay (Didomi)
    consent_overlays: tuple[str, ...] = (
        ".didomi-popup-container",
        ".didomi-popup-notice",
        'div[role="dialog"][aria-label*="consentement"]',
        'div[data-testid="notice"]',
    )
    consent_accept_buttons: tuple[str, ...] = (
        "button#didomi-notice-agree-button",
        'button:has-text("Accepter")',
        ".didomi-dismiss-button",
        '.didomi-button:has-text("Accepter")',
    )
    consent_decline_buttons: tuple[str, ...] = (
        ".didomi-popup-close",
        'a[aria-label*="Fermer"]',
        "button#didomi-notice-disagree-button",
        'button:has-text("Refuser")',
        ".didomi-disagree-button",
    )

    # Login form
    pin_inputs: str = 'input[name^="pin["]'
    pin_input_template: str = 'input[name="pin[{index}]"]'
    password_input: str = "input#password"
    username_input: str = "input#username"
    username_alternatives: tuple[str, ...] = (
        'input[name="username"]',
        'input[name="email"]',
        'input[type="email"]',
        'input[placeholder*="mail" i]',
        'input[placeholder*="utilisateur" i]',
    )
    pin_submit_buttons: tuple[str, ...] = (
        'button[type="submit"]',
        'button:has-text("Se connecter")',
        'button:has-text("Connexion")',
        'button:has-text("Valider")',
        ".dl-button-primary",
    )
    full_login_submit_buttons: tuple[str, ...] = (
        'button[type="submit"].dl-button-primary',
        'button[type="submit"]',
        'button:has-text("Se connecter")',
        'button:has-text("Connexion")',
        ".dl-button-primary",
    )
    password_only_submit_buttons: tuple[str, ...] = (
        'button:has-text("Se connecter")',
        'button:has-text("Connexion")',
        'button[type="submit"]',
        ".dl-button-primary",
    )

    # Second factor ("Valider" once the code was received/approved)
    second_factor_buttons: tuple[str, ...] = (
        'button:has-text("Valider")',
        'button .dl-button-label:has-text("Valider")',
        'button[type="submit"]:has-text("Valider")',
        '.dl-button:has-text("Valider")',
        'button:has(.dl-button-label:has-text("Valider"))',
    )

    # Identity verification (CPS card) modal shown after login
    identity_overlays: tuple[str, ...] = (
        '.dl-modal-content:has-text("Confirmez votre identité")',
        '.dl-modal-content:has-text("vérification")',
        'div[class*="modal"]:has-text("CPS")',
        ".dl-modal-content",
    )
    identity_close_buttons: tuple[str, ...] = (
        ".dl-modal-close-icon button",
        'button[aria-label="Fermer"]',
        '.dl-modal-content button:has-text("×")',
        '.dl-modal-content .dl-icon:has([data-icon-name*="xmark"])',
        ".dl-modal-close-icon",
        'button:has(.dl-icon[data-icon-name*="xmark"])',
    )

    # Calendar
    appointment_block: str = "div.dc-event-inner"
    appointment_last_name_attr: str = "data-appointment-last-name"
    appointment_first_name_attr: str = "data-appointment-first-name"
    appointment_time_attr: str = "data-event-time"

    # Appointment sidebar
    sidebar: str = "div.dl-left-navigation-bar"
    sidebar_date_input: str = 'input[name="appointment[start_date]"]'
    admin_section_buttons: tuple[str, ...] = (
        'span.dl-button-label:has(h3:has-text("Infos administratives"))',
        'button:has(h3:has-text("Infos administratives"))',
        'button:has(.dl-button-label:has(h3:has-text("Infos administratives")))',
        '.dl-button-label:has(h3:has-text("INFOS ADMINISTRATIVES"))',
        'button[name="Infos administratives-caret"]',
        'button[data-test-id="Infos administratives-caret"]',
        'button:has-text("Infos administratives")',
        'button:has(svg[data-icon-name="solid/triangle-exclamation"])',
    )
    phone_inputs: tuple[str, ...] = (
        "input#phone_number",
        'input[placeholder="Téléphone portable"]',
        'input[title="Téléphone portable"]',
        'input[type="tel"]',
    )
    phone_link: str = 'a[href^="tel:"]'
    return_to_agenda: str = 'div.dl-permanent-entry-label:has-text("Agenda")'


@dataclass(frozen=True)
class PortalTimeouts:
    """Per-wait bounds in milliseconds."""

    signin_navigation_ms: int = 60_000
    consent_overlay_ms: int = 8_000
    consent_button_ms: int = 3_000
    consent_settle_ms: int = 3_000
    pin_probe_ms: int = 5_000
    pin_input_ms: int = 5_000
    password_input_ms: int = 15_000
    username_input_ms: int = 5_000
    username_alternative_ms: int = 2_000
    submit_button_ms: int = 3_000
    # Depends on the user approving the second factor on another device.
    second_factor_ms: int = 10_000
    second_factor_settle_ms: int = 1_000
    # Generous enough for a human to type a code received by SMS/email.
    landing_navigation_ms: int = 15 * 60_000
    identity_overlay_ms: int = 5_000
    identity_close_ms: int = 3_000
    identity_settle_ms: int = 2_000

    appointments_visible_ms: int = 45_000
    block_attribute_ms: int = 2_000
    sidebar_open_ms: int = 20_000
    date_input_ms: int = 10_000
    admin_section_ms: int = 5_000
    admin_section_settle_ms: int = 2_000
    phone_field_ms: int = 10_000
    sidebar_close_ms: int = 10_000
