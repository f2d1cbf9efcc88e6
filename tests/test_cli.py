import json
import os
from pathlib import Path

import pytest
from typer.testing import CliRunner

from safeguard import __version__
from safeguard.cli import app
from safeguard.commands.password_cmds import _finish
from safeguard.service import SyncNotice

runner = CliRunner()


def _invoke(db_path: Path, *args: str, **kwargs):
    return runner.invoke(app, [*args, "--db-path", str(db_path)], **kwargs)


def _listing(db_path: Path) -> list[dict]:
    result = _invoke(db_path, "list", "--json")
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("add", "list", "search", "show", "update", "delete", "stats", "clear"):
        assert name in result.stdout


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_add_then_list_masks_passwords(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"

    result = _invoke(db_path, "add", "Gmail", "me@gmail.com", "-p", "hunter2", "--tag", "mail")

    assert result.exit_code == 0, result.output
    assert "Saved" in result.stdout
    assert "hunter2" not in result.stdout
    rows = _listing(db_path)
    assert len(rows) == 1
    assert rows[0]["service"] == "Gmail"
    assert rows[0]["password"] == "********"
    assert rows[0]["tags"] == ["mail"]


def test_add_prompts_for_password(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"
    result = _invoke(db_path, "add", "Bank", "me", input="s3cret\ns3cret\n")
    assert result.exit_code == 0, result.output
    assert len(_listing(db_path)) == 1


def test_add_rejects_blank_service(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"
    result = _invoke(db_path, "add", " ", "me", "-p", "pw")
    assert result.exit_code == 1
    assert "service is required" in result.stdout
    assert _listing(db_path) == []


def test_add_generated_password(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"
    result = _invoke(db_path, "add", "Forum", "me", "--generate", "--length", "24")
    assert result.exit_code == 0, result.output
    record_id = _listing(db_path)[0]["id"]

    shown = _invoke(db_path, "show", record_id, "--reveal")

    assert shown.exit_code == 0
    assert "strength" in shown.stdout


def test_show_reveal_and_missing(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"
    _invoke(db_path, "add", "Gmail", "me", "-p", "hunter2", "--notes", "personal")
    record_id = _listing(db_path)[0]["id"]

    masked = _invoke(db_path, "show", record_id)
    revealed = _invoke(db_path, "show", record_id, "--reveal")
    missing = _invoke(db_path, "show", "pwd_missing")

    assert "hunter2" not in masked.stdout
    assert "personal" in masked.stdout
    assert "hunter2" in revealed.stdout
    assert missing.exit_code == 1
    assert "not found" in missing.stdout


def test_search_plain_and_fuzzy(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"
    _invoke(db_path, "add", "Gmail", "bob", "-p", "pw")
    _invoke(db_path, "add", "Facebook", "bob", "-p", "pw")

    plain = _invoke(db_path, "search", "gma", "--json")
    fuzzy = _invoke(db_path, "search", "gmial", "--fuzzy", "--json")
    none = _invoke(db_path, "search", "zzz")

    assert [row["service"] for row in json.loads(plain.stdout)] == ["Gmail"]
    assert [row["service"] for row in json.loads(fuzzy.stdout)][0] == "Gmail"
    assert "No passwords stored" in none.stdout


def test_update_and_delete(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"
    _invoke(db_path, "add", "Gmail", "me", "-p", "old")
    record_id = _listing(db_path)[0]["id"]

    updated = _invoke(db_path, "update", record_id, "-p", "new", "--username", "you")
    assert updated.exit_code == 0, updated.output
    assert _listing(db_path)[0]["username"] == "you"

    missing = _invoke(db_path, "update", "pwd_missing", "-p", "x")
    assert missing.exit_code == 1
    assert "not found" in missing.stdout

    nothing = _invoke(db_path, "update", record_id)
    assert "Nothing to update" in nothing.stdout

    deleted = _invoke(db_path, "delete", record_id)
    again = _invoke(db_path, "delete", record_id)
    assert deleted.exit_code == 0
    assert again.exit_code == 0
    assert _listing(db_path) == []


def test_list_sorting(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"
    for name in ("beta", "Alpha", "gamma"):
        _invoke(db_path, "add", name, "me", "-p", "pw")

    result = _invoke(db_path, "list", "--sort", "service", "--asc", "--json")
    bad = _invoke(db_path, "list", "--sort", "password")

    assert [row["service"] for row in json.loads(result.stdout)] == ["Alpha", "beta", "gamma"]
    assert bad.exit_code == 1


def test_stats_and_clear(tmp_path: Path) -> None:
    db_path = tmp_path / "vault.sqlite"
    _invoke(db_path, "add", "A", "me", "-p", "pw")
    _invoke(db_path, "add", "B", "me", "-p", "pw")

    stats = _invoke(db_path, "stats", "--json")
    assert json.loads(stats.stdout) == {"total": 2, "has_any": True}

    refused = _invoke(db_path, "clear")
    assert refused.exit_code == 1
    assert len(_listing(db_path)) == 2

    cleared = _invoke(db_path, "clear", "--yes")
    assert cleared.exit_code == 0
    assert json.loads(_invoke(db_path, "stats", "--json").stdout)["total"] == 0


def test_generate_prints_password() -> None:
    result = runner.invoke(app, ["generate", "--length", "20"])
    assert result.exit_code == 0
    assert len(result.stdout.splitlines()[0]) == 20

    bad = runner.invoke(app, ["generate", "--length", "0"])
    assert bad.exit_code == 1


def test_health_local_only(tmp_path: Path) -> None:
    result = _invoke(tmp_path / "vault.sqlite", "health")
    assert result.exit_code == 0
    assert "local" in result.stdout
    assert "n/a" in result.stdout


def test_config_set_show_and_unset() -> None:
    config_path = Path(os.environ["SAFEGUARD_CONFIG"])

    result = runner.invoke(app, ["config", "set", "hybrid_enabled", "yes"])
    assert result.exit_code == 0, result.output
    assert json.loads(config_path.read_text()) == {"hybrid_enabled": True}

    runner.invoke(app, ["config", "set", "api_retry_attempts", "5"])
    shown = runner.invoke(app, ["config", "show"])
    assert shown.exit_code == 0
    assert '"hybrid_enabled": true' in shown.stdout
    assert '"api_retry_attempts": 5' in shown.stdout

    removed = runner.invoke(app, ["config", "unset", "hybrid_enabled"])
    assert removed.exit_code == 0
    assert json.loads(config_path.read_text()) == {"api_retry_attempts": 5}


def test_config_set_rejects_bad_values() -> None:
    config_path = Path(os.environ["SAFEGUARD_CONFIG"])

    unknown = runner.invoke(app, ["config", "set", "colour", "blue"])
    bad_int = runner.invoke(app, ["config", "set", "api_retry_attempts", "many"])

    assert unknown.exit_code == 1
    assert "unknown config key" in unknown.stdout
    assert bad_int.exit_code == 1
    assert not config_path.exists()


def test_config_set_refuses_to_overwrite_broken_file() -> None:
    config_path = Path(os.environ["SAFEGUARD_CONFIG"])
    config_path.write_text("{broken")

    result = runner.invoke(app, ["config", "set", "mirror_async", "false"])

    assert result.exit_code == 1
    assert "Invalid config file" in result.stdout
    assert config_path.read_text() == "{broken"


class _FailedMirrorService:
    def __init__(self) -> None:
        self.notices = [
            SyncNotice(operation="create", record_id="pwd_1", error="remote down", at="t")
        ]

    def flush(self, timeout: float | None = None) -> bool:
        return True

    def pop_sync_notices(self) -> list[SyncNotice]:
        notices, self.notices = self.notices, []
        return notices


def test_sync_failures_are_reported_once(capsys: pytest.CaptureFixture[str]) -> None:
    service = _FailedMirrorService()

    _finish(service)  # type: ignore[arg-type]
    first = capsys.readouterr().out
    _finish(service)  # type: ignore[arg-type]
    second = capsys.readouterr().out

    assert "remote down" in first
    assert "remote down" not in second
