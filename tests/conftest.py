from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from safeguard.config import CONFIG_ENV_OVERRIDES
from safeguard.service import reset_services


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    monkeypatch.setenv("SAFEGUARD_CONFIG", str(tmp_path / "config.json"))
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    yield
    reset_services()
