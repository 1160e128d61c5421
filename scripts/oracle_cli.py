# ABOUTME: Provides a CLI that records quizzes and games and asks the oracle for a score forecast.
# ABOUTME: State lives in a JSON store directory so runs can be repeated from the shell.

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from src.behavior.profiler import BehavioralProfiler, average_confidence
from src.common.config import EngineConfig, SimulationConfig, load_engine_config
from src.common.log import setup_logging
from src.common.schemas import ActiveSignal, PassiveTelemetry, SessionItem, as_float
from src.common.store import JsonFileStore
from src.common.taxonomy import SUBJECTS
from src.mastery.tracker import MasteryTracker
from src.oracle.client import OracleClient
from src.oracle.display import format_for_display
from src.oracle.ensemble import fallback_prediction, predict as predict_inline
from src.oracle.errors import OracleError
from src.oracle.snapshot import build_prediction_snapshot

console = Console()
app = typer.Typer(help="Track exam readiness and forecast the prelims score.")

STORE_OPTION = typer.Option(Path("data/oracle_state"), "--store-dir", help="Directory holding the JSON stores.")
CONFIG_OPTION = typer.Option(None, "--config", help="Optional oracle config YAML.")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _load(store_dir: Path, config_path: Optional[Path], user_id: str):
    config = load_engine_config(config_path) if config_path else EngineConfig()
    store = JsonFileStore(store_dir)
    now = _now()
    tracker = MasteryTracker(store, SUBJECTS, config.mastery).load()
    tracker.refresh_decay(now)
    profiler = BehavioralProfiler(store, user_id, config.behavior).load(now)
    return config, tracker, profiler


@app.command()
def predict(
    store_dir: Path = STORE_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
    user_id: str = typer.Option("user_1", "--user-id", help="Candidate whose profile drives the modifiers."),
    inline: bool = typer.Option(False, "--inline", help="Run the ensemble in this process instead of a worker."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for a reproducible simulation."),
    timeout: float = typer.Option(30.0, "--timeout", help="Seconds to wait for the worker."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level for stderr JSON logs."),
) -> None:
    """
    Forecast the primary-paper score from the stored mastery and behavior state.
    """
    setup_logging(log_level)
    config, tracker, profiler = _load(store_dir, config_path, user_id)
    snapshot = build_prediction_snapshot(tracker.records, SUBJECTS, profiler.profile)
    options = config.simulation.to_dict()
    if seed is not None:
        options["seed"] = seed

    if inline:
        result = predict_inline(snapshot, SimulationConfig.from_dict(options))
    else:
        try:
            with OracleClient(default_timeout=timeout) as client:
                result = client.predict(snapshot, options)
        except OracleError as exc:
            console.print(f"[yellow]Oracle unavailable ({exc}); using low-power estimate.[/yellow]")
            result = fallback_prediction(snapshot, config.simulation)

    band = format_for_display(result)
    console.rule("[bold blue]Prelims Forecast[/bold blue]")
    console.print(f"[bold]Score:[/] {result.score} / {int(config.simulation.max_marks)}")
    console.print(f"[bold]Range:[/] {result.range_min:.0f} to {result.range_max:.0f}")
    console.print(f"[bold]Confidence:[/] {result.confidence:.2f}")
    console.print(f"[bold]Qualification:[/] [{band.color}]{band.text}[/{band.color}]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Model")
    table.add_column("Score")
    for name, value in result.breakdown.items():
        table.add_row(name, str(value))
    console.print(table)
    if result.flags:
        console.print(f"[red]Flags:[/red] {', '.join(result.flags)}")


@app.command()
def profile(
    store_dir: Path = STORE_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
    user_id: str = typer.Option("user_1", "--user-id", help="Candidate identifier."),
) -> None:
    """
    Show subject mastery, trait values, and the current archetype.
    """
    _, tracker, profiler = _load(store_dir, config_path, user_id)

    console.print("[bold green]Mastery[/bold green]")
    mastery_table = Table(show_header=True, header_style="bold magenta")
    for column in ("Subject", "Proficiency", "Confidence", "Attempts"):
        mastery_table.add_column(column)
    for row in tracker.summary_frame().itertuples(index=False):
        color = row.band
        mastery_table.add_row(
            row.name,
            f"[{color}]{row.proficiency:.1f}[/{color}]",
            f"{row.confidence:.2f}",
            str(row.attempts),
        )
    console.print(mastery_table)
    console.print(f"[bold]Global mastery:[/] {tracker.global_mastery()}")

    console.print()
    console.print(f"[bold yellow]Behavior[/bold yellow] ({profiler.archetype()})")
    trait_table = Table(show_header=True, header_style="bold magenta")
    trait_table.add_column("Trait")
    trait_table.add_column("Value")
    trait_table.add_column("Confidence")
    for row in profiler.trait_frame().itertuples(index=False):
        trait_table.add_row(row.trait, f"{row.value:.2f}", f"{row.confidence:.2f}")
    console.print(trait_table)
    console.print(f"[bold]Profile confidence:[/] {average_confidence(profiler.profile):.2f}")


@app.command("blind-spots")
def blind_spots(
    store_dir: Path = STORE_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """
    List heavily weighted subjects that have barely been practiced.
    """
    _, tracker, _ = _load(store_dir, config_path, "user_1")
    spots = tracker.blind_spots()
    if not spots:
        console.print("[green]No blind spots.[/green]")
        return
    for subject_id in spots:
        subject = SUBJECTS[subject_id]
        console.print(f"[red]{subject.name}[/red] (weight {subject.exam_weight:.2f})")


@app.command()
def ping(
    timeout: float = typer.Option(5.0, "--timeout", help="Seconds to wait for the worker."),
) -> None:
    """
    Start the oracle worker and check it answers.
    """
    with OracleClient() as client:
        healthy = client.ping(timeout)
    if not healthy:
        console.print("[red]Oracle worker did not respond.[/red]")
        raise typer.Exit(code=1)
    console.print("[green]Oracle worker is healthy.[/green]")


@app.command("record-quiz")
def record_quiz(
    session_path: Path = typer.Argument(..., help="JSON file with `items` and optional `telemetry`."),
    store_dir: Path = STORE_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
    user_id: str = typer.Option("user_1", "--user-id", help="Candidate identifier."),
) -> None:
    """
    Fold one finished quiz into mastery and the behavioral profile.
    """
    if not session_path.exists():
        console.print(f"[red]Missing session file at {session_path}[/red]")
        raise typer.Exit(code=1)
    payload = json.loads(session_path.read_text())
    items = [SessionItem.from_dict(raw) for raw in payload.get("items", [])]
    telemetry = PassiveTelemetry.from_dict(payload.get("telemetry") or {})

    _, tracker, profiler = _load(store_dir, config_path, user_id)
    now = _now()
    updated = tracker.record_quiz(items, now)
    profiler.record_quiz(telemetry, items, now)

    for record in updated:
        console.print(f"[bold]{record.subject_id}:[/] {record.proficiency:.1f} (confidence {record.confidence:.2f})")
    console.print(f"[green]Recorded {len(items)} items across {len(updated)} subjects.[/green]")


@app.command("record-game")
def record_game(
    game_id: str = typer.Argument(..., help="Mini-game identifier, e.g. BLINK_TEST."),
    score: float = typer.Argument(..., help="Normalized 0-1 game score."),
    metrics_json: str = typer.Option("{}", "--metrics", help="Game metrics as a JSON object."),
    store_dir: Path = STORE_OPTION,
    config_path: Optional[Path] = CONFIG_OPTION,
    user_id: str = typer.Option("user_1", "--user-id", help="Candidate identifier."),
) -> None:
    """
    Fold one mini-game result into the behavioral profile.
    """
    metrics = {str(k): as_float(v) for k, v in json.loads(metrics_json).items()}
    _, _, profiler = _load(store_dir, config_path, user_id)
    profiler.record_game(ActiveSignal(game_id=game_id.upper(), normalized_score=score, metrics=metrics), _now())
    console.print(f"[green]Archetype:[/green] {profiler.archetype()}")


if __name__ == "__main__":
    app()
