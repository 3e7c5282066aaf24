from __future__ import annotations

from dataclasses import replace

from schedule_engine.utils.config import get_settings
from scripts.validate_environment import main, run_smoke_scenario


def test_smoke_scenario_finds_the_room_clash(tmp_path) -> None:
    get_settings.cache_clear()
    settings = replace(get_settings(), database_path=tmp_path / "smoke.db")

    detail = run_smoke_scenario(settings)

    assert "1 conflict" in detail
    assert "2 entries" in detail


def test_validation_script_passes_in_test_environment(capsys) -> None:
    assert main() == 0
    assert "All checks passed" in capsys.readouterr().out
