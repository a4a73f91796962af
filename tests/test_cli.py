from __future__ import annotations

import json
from pathlib import Path

import pytest

from doctolib_agenda_sync.cli import main
from doctolib_agenda_sync.models import AppointmentRecord
from doctolib_agenda_sync.portal.session import clear_profile


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for key in ("WEBHOOK_URL", "DOCTOLIB_PIN", "DOCTOLIB_USERNAME", "BROWSER_USER_DATA_DIR"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DOCTOLIB_PASSWORD", "super-secret")
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "run.log"))
    return tmp_path


def test_show_config_hides_secrets(env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--env-file", str(env / "none.env"), "show-config"]) == 0

    out = capsys.readouterr().out
    data = json.loads(out)
    assert "super-secret" not in out
    assert "password" not in data["doctolib"]
    assert data["browser"]["user_data_dir"] == "data/user_data"


def test_run_without_webhook_requires_dry_run(env: Path) -> None:
    with pytest.raises(SystemExit):
        main(["--env-file", str(env / "none.env"), "run"])


def test_clear_profile_command_removes_directory(env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    profile = env / "profile"
    (profile / "Default").mkdir(parents=True)
    (profile / "Default" / "Cookies").write_bytes(b"x")
    monkeypatch.setenv("BROWSER_USER_DATA_DIR", str(profile))

    assert main(["--env-file", str(env / "none.env"), "clear-profile"]) == 0
    assert not profile.exists()
    assert clear_profile(str(profile)) is False


def test_record_payload_uses_webhook_keys() -> None:
    record = AppointmentRecord(patient="DUPONT Marie", date_time="19/10/2026 09:30", phone_number="0611")
    assert record.to_payload() == {"patient": "DUPONT Marie", "dateTime": "19/10/2026 09:30", "phoneNumber": "0611"}
    assert AppointmentRecord.failed("X").is_deliverable is False


def test_profile_and_config_commands_work_without_credentials(
    env: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("DOCTOLIB_PASSWORD")
    monkeypatch.setenv("BROWSER_USER_DATA_DIR", str(env / "profile"))

    assert main(["--env-file", str(env / "none.env"), "show-config"]) == 0
    assert json.loads(capsys.readouterr().out)["doctolib"]["base_url"] == "https://pro.doctolib.fr"
    assert main(["--env-file", str(env / "none.env"), "clear-profile"]) == 0


def test_run_without_credentials_exits_before_launching(env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DOCTOLIB_PASSWORD")

    with pytest.raises(SystemExit, match="DOCTOLIB_PASSWORD"):
        main(["--env-file", str(env / "none.env"), "run", "--dry-run"])
