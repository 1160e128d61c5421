# ABOUTME: Verifies the oracle CLI exposes its commands and drives a full record-and-predict loop.
# ABOUTME: Runs against a temporary JSON store with the ensemble executed inline.

import json

from typer.testing import CliRunner

from scripts import oracle_cli
from src.common.store import ACADEMIC_STORE, PROFILE_STORE, JsonFileStore

runner = CliRunner()


def test_cli_has_expected_commands():
    app = oracle_cli.app
    command_names = {cmd.name or cmd.callback.__name__ for cmd in app.registered_commands}
    assert {"predict", "profile", "ping", "blind-spots", "record-quiz", "record-game"} <= command_names


def test_record_quiz_then_predict_inline(tmp_path):
    store_dir = tmp_path / "state"
    session = tmp_path / "session.json"
    items = [
        {"question_id": f"q{i}", "subject_id": "polity", "difficulty": "L2", "is_correct": i % 4 != 0}
        for i in range(12)
    ]
    session.write_text(json.dumps({"items": items, "telemetry": {"durations_ms": {"q0": 40000}}}))

    recorded = runner.invoke(oracle_cli.app, ["record-quiz", str(session), "--store-dir", str(store_dir)])
    assert recorded.exit_code == 0, recorded.output
    assert "Recorded 12 items" in recorded.output

    store = JsonFileStore(store_dir)
    assert store.get(ACADEMIC_STORE, "polity")["attempts_medium"] == 12
    assert store.get(PROFILE_STORE, "user_1")["total_sessions"] == 1

    forecast = runner.invoke(
        oracle_cli.app, ["predict", "--store-dir", str(store_dir), "--inline", "--seed", "5"]
    )
    assert forecast.exit_code == 0, forecast.output
    assert "Prelims Forecast" in forecast.output
    assert "CSAT_CRITICAL_FAIL" in forecast.output


def test_blind_spots_on_fresh_store(tmp_path):
    result = runner.invoke(oracle_cli.app, ["blind-spots", "--store-dir", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Indian Polity" in result.output


def test_record_quiz_reports_missing_file(tmp_path):
    result = runner.invoke(oracle_cli.app, ["record-quiz", str(tmp_path / "none.json"), "--store-dir", str(tmp_path)])
    assert result.exit_code == 1


def test_record_game_updates_profile(tmp_path):
    result = runner.invoke(
        oracle_cli.app,
        ["record-game", "balloon_pop", "0.9", "--metrics", '{"risk_factor": 0.9}', "--store-dir", str(tmp_path)],
    )
    assert result.exit_code == 0, result.output
    saved = JsonFileStore(tmp_path).get(PROFILE_STORE, "user_1")
    assert saved["traits"]["risk"]["value"] > 0.5
