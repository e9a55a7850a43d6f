from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Optional

import typer
from rich.progress import Progress

from . import __version__
from .config import (
    PROPOSER_MODES,
    PoseSettings,
    as_dict,
    print_config,
    resolve_settings,
    validate_settings,
)
from .pose.context import PoseContext
from .pose.types import InputExhausted, PoseResult, Role
from .utils.video import open_source
from .utils.visualization import OpenCVRenderer, RecordingRenderer, Renderer

app = typer.Typer(help="Track a crude upper-body pose (face, shoulders, elbows, hands) from video.")


def _fail(message: str, *, code: int = 1) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _apply_overrides(
    settings: PoseSettings,
    *,
    mode: Optional[str],
    seed: Optional[int],
    require_activation: Optional[bool],
) -> PoseSettings:
    driver = settings.driver
    changes = {}
    if mode is not None:
        changes["mode"] = mode
    if seed is not None:
        changes["random_seed"] = seed
    if require_activation is not None:
        changes["require_activation"] = require_activation
    if not changes:
        return settings
    return dataclasses.replace(settings, driver=dataclasses.replace(driver, **changes))


def _format_result(result: PoseResult) -> str:
    parts = []
    for role in (Role.FACE, Role.LEFT_HAND, Role.RIGHT_HAND):
        x, y = result.roles[role].location
        parts.append(f"{role.value}=({x:.0f},{y:.0f})")
    lx, ly = result.left_elbow
    rx, ry = result.right_elbow
    parts.append(f"elbows=({lx:.0f},{ly:.0f})/({rx:.0f},{ry:.0f})")
    return " ".join(parts)


@app.command()
def run(
    source: str = typer.Option(
        "0",
        "--source",
        "-s",
        help="Camera index, video file, or directory of images.",
    ),
    mode: Optional[str] = typer.Option(
        None,
        "--mode",
        "-m",
        help="Joint proposer: 'local-search' or 'heatmap' (defaults to config).",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML/JSON settings file (defaults to UPOSE_CONFIG).",
    ),
    max_frames: Optional[int] = typer.Option(
        None,
        "--max-frames",
        "-n",
        min=1,
        help="Stop after this many frames (after the background frame).",
    ),
    display: bool = typer.Option(
        True,
        "--display/--no-display",
        help="Show the annotated stream in a window (press q to quit).",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for the local search (reproducible runs).",
    ),
    require_activation: Optional[bool] = typer.Option(
        None,
        "--require-activation/--no-require-activation",
        help="Wait for foreground at the frame centre before tracking.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Print the pose estimate of every frame.",
    ),
) -> None:
    """
    Track a pose from a camera, video file or image sequence.

    The first frame is used as the background reference, so start with the
    scene empty.

    Examples:
        upose run --source 0
        upose run --source capture.mp4 --mode heatmap --no-display
    """
    if mode is not None and mode not in PROPOSER_MODES:
        _fail(f"Unknown mode '{mode}'. Choose one of: {', '.join(PROPOSER_MODES)}.")

    try:
        settings = resolve_settings(config)
    except (FileNotFoundError, ValueError) as exc:
        _fail(f"Could not load config: {exc}")
    settings = _apply_overrides(settings, mode=mode, seed=seed, require_activation=require_activation)
    validate_settings(settings)

    try:
        frames = open_source(source)
    except (FileNotFoundError, ValueError, RuntimeError) as exc:
        _fail(f"Could not open source '{source}': {exc}")

    renderer: Renderer = OpenCVRenderer() if display else RecordingRenderer(maxlen=1)
    try:
        context = PoseContext(frames, settings, renderer=renderer)
    except InputExhausted:
        frames.close()
        _fail(f"Source '{source}' produced no frames.")
    except ValueError as exc:
        frames.close()
        _fail(f"Invalid settings: {exc}")

    total = frames.frame_count - 1 if frames.frame_count else None
    if max_frames is not None and total is not None:
        total = min(total, max_frames)
    last: list[PoseResult] = []

    try:
        with Progress(transient=True) as progress:
            task = progress.add_task(f"Tracking {source}", total=total)

            def _on_frame(count: int, result: Optional[PoseResult]) -> None:
                progress.update(task, completed=count)
                if result is None:
                    return
                last[:] = [result]
                if verbose:
                    progress.console.print(f"[{result.frame_index}] {_format_result(result)}")

            processed = context.run(max_frames=max_frames, progress_callback=_on_frame)
    finally:
        context.close()

    typer.echo(f"Processed {processed} frame{'s' if processed != 1 else ''} from {source}.")
    if last:
        typer.echo(f"Final pose: {_format_result(last[0])}")
    else:
        typer.echo("Tracking never activated (no foreground at the frame centre).")


@app.command("config")
def config_show(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML/JSON settings file."),
) -> None:
    """
    Show the effective settings (defaults, config file and UPOSE_* overrides).
    """
    try:
        settings = resolve_settings(config)
    except (FileNotFoundError, ValueError) as exc:
        _fail(f"Could not load config: {exc}")
    for section, values in as_dict(settings).items():
        typer.echo(f"[{section}]")
        for name, value in values.items():
            typer.echo(f"  {name} = {value}")
    problems = validate_settings(settings)
    if problems:
        typer.secho(f"{len(problems)} suspicious setting(s); see warnings above.", fg=typer.colors.YELLOW)


@app.command("info")
def info(
    show_config: bool = typer.Option(False, "--config", help="Also print the resolved settings."),
) -> None:
    """
    Display version and available proposer modes.
    """
    typer.echo(f"upose {__version__}")
    typer.echo("Pipeline: perceptual maps -> candidates -> role assignment -> joint proposal.")
    typer.echo("Proposer modes: " + ", ".join(PROPOSER_MODES))
    if show_config:
        try:
            print_config(resolve_settings())
        except (FileNotFoundError, ValueError) as exc:
            _fail(f"Could not load config: {exc}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
