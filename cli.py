#!/usr/bin/env python3
"""Command-line interface for impact-synchronized swing capture and analysis."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import yaml

DEFAULT_DATABASE_URL = "sqlite:///data/impact_sync.db"


def load_config(config_path: str = "config/config.yaml") -> dict:
    """Load configuration from YAML file."""
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            return yaml.safe_load(f) or {}
    return {}


def _setup_logging(ctx: click.Context) -> None:
    from impact_sync.utils.logging_config import LoggingSettings, configure_logging

    settings = LoggingSettings.from_dict(ctx.obj["config"].get("logging"))
    configure_logging(settings, verbose=ctx.obj["verbose"])


def _database_url(cfg: dict) -> str:
    return cfg.get("database", {}).get("url", DEFAULT_DATABASE_URL)


@click.group()
@click.option(
    "--config",
    "-c",
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging",
)
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool) -> None:
    """Impact-Synchronized Swing Analysis.

    Record swings with a contact-locked camera buffer and measure the
    kinematic sequence with pose estimation.
    """
    ctx.ensure_object(dict)

    cfg = load_config(config)
    ctx.obj["config"] = cfg
    ctx.obj["verbose"] = verbose


async def _record_session(recorder, impact_after: Optional[float]):
    """Buffer, wait for the impact signal, and return the artifact."""
    await recorder.start_buffering()

    loop = asyncio.get_running_loop()
    impact_requested = asyncio.Event()
    use_keyboard = impact_after is None and not recorder.config.auto_detect_impact

    if impact_after is not None:
        loop.call_later(impact_after, impact_requested.set)
    elif use_keyboard:
        loop.add_reader(sys.stdin, impact_requested.set)

    try:
        while not recorder.is_buffer_ready:
            await asyncio.sleep(0.1)
        if use_keyboard:
            click.echo("Buffer ready. Press ENTER at contact.", err=True)
        else:
            click.echo("Buffer ready. Waiting for contact...", err=True)

        waiter = asyncio.ensure_future(recorder.wait_for_artifact())
        signal = asyncio.ensure_future(impact_requested.wait())
        done, _ = await asyncio.wait({waiter, signal}, return_when=asyncio.FIRST_COMPLETED)
        if signal in done and not waiter.done():
            if use_keyboard:
                sys.stdin.readline()
            recorder.trigger_impact()
        else:
            signal.cancel()
        return await waiter
    finally:
        if use_keyboard:
            loop.remove_reader(sys.stdin)


@cli.command()
@click.option("--device", "-d", default="0", help="Camera index or stream URL")
@click.option("--frame-rate", "-f", type=float, help="Requested capture frame rate")
@click.option("--post-impact-ms", type=float, help="Capture window after contact (ms)")
@click.option("--output-dir", "-o", help="Directory for finished clips")
@click.option(
    "--impact-after",
    type=float,
    help="Trigger the impact this many seconds after buffering starts (no keyboard)",
)
@click.option("--auto-detect", is_flag=True, help="Trigger the impact from the contact sound")
@click.pass_context
def record(
    ctx: click.Context,
    device: str,
    frame_rate: Optional[float],
    post_impact_ms: Optional[float],
    output_dir: Optional[str],
    impact_after: Optional[float],
    auto_detect: bool,
) -> None:
    """Record an impact-synchronized swing clip."""
    from impact_sync.capture import ImpactSyncRecorder, OpenCVCameraSource, RecorderConfig
    from impact_sync.exceptions import ImpactSyncError

    _setup_logging(ctx)
    rec_cfg = ctx.obj["config"].get("recorder", {})

    config = RecorderConfig(
        frame_rate=frame_rate or rec_cfg.get("frame_rate", 120.0),
        post_impact_ms=post_impact_ms or rec_cfg.get("post_impact_ms", 500.0),
        buffer_seconds=rec_cfg.get("buffer_seconds", 2.0),
        chunk_interval_ms=rec_cfg.get("chunk_interval_ms", 100.0),
        min_quality_frame_rate=rec_cfg.get("min_quality_frame_rate", 60.0),
        codec=rec_cfg.get("codec", "mp4v"),
        output_dir=output_dir or rec_cfg.get("output_dir", "data/recordings"),
        file_extension=rec_cfg.get("file_extension", "mp4"),
        auto_detect_impact=auto_detect or rec_cfg.get("auto_detect_impact", False),
        audio_impact_threshold=rec_cfg.get("audio_impact_threshold", 0.75),
    )

    source = OpenCVCameraSource(
        device=int(device) if device.isdigit() else device,
        width=rec_cfg.get("width", 1280),
        height=rec_cfg.get("height", 720),
    )
    recorder = ImpactSyncRecorder(
        source,
        config,
        on_warning=lambda message: click.echo(f"Warning: {message}", err=True),
    )

    async def run():
        async with recorder:
            return await _record_session(recorder, impact_after)

    try:
        artifact = asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("Recording cancelled", err=True)
        sys.exit(1)
    except ImpactSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Captured {artifact.total_frames} frames! Impact at frame {artifact.impact_frame_index}.")
    click.echo(json.dumps(artifact.to_dict(), indent=2))


@cli.command()
@click.argument("video", type=click.Path(exists=True, dir_okay=False))
@click.option("--impact-frame", "-i", required=True, type=int, help="Contact frame index")
@click.option("--frame-rate", "-f", required=True, type=float, help="Sampling frame rate")
@click.option(
    "--backend",
    "-b",
    type=click.Choice(["mediapipe", "yolo"]),
    help="Pose estimation backend",
)
@click.option("--bat-tracking/--no-bat-tracking", default=None, help="Run bat tracking")
@click.option(
    "--bat-detector",
    type=click.Choice(["hough", "yolo"]),
    help="Bat detector",
)
@click.option("--save", is_flag=True, help="Store the analysis in the database")
@click.option("--label", help="Label stored with the analysis")
@click.pass_context
def analyze(
    ctx: click.Context,
    video: str,
    impact_frame: int,
    frame_rate: float,
    backend: Optional[str],
    bat_tracking: Optional[bool],
    bat_detector: Optional[str],
    save: bool,
    label: Optional[str],
) -> None:
    """Analyze the kinematic sequence of a recorded swing."""
    from impact_sync.analysis.calibration import CorrectionFactors
    from impact_sync.exceptions import ImpactSyncError
    from impact_sync.pipeline.orchestrator import PipelineConfig, SwingAnalysisPipeline

    _setup_logging(ctx)
    cfg = ctx.obj["config"]
    pose_cfg = cfg.get("pose", {})
    bat_cfg = cfg.get("bat_tracking", {})

    bat_options = {}
    if bat_cfg.get("model_path"):
        bat_options["weights"] = bat_cfg["model_path"]

    pipeline_config = PipelineConfig(
        frame_rate=frame_rate,
        pose_backend=backend or pose_cfg.get("default_backend", "mediapipe"),
        bat_tracking=bat_cfg.get("enabled", False) if bat_tracking is None else bat_tracking,
        bat_detector=bat_detector or bat_cfg.get("detector", "hough"),
        bat_options=bat_options,
        bat_min_confidence=bat_cfg.get("min_confidence", 0.6),
        correction_factors=CorrectionFactors.from_dict(cfg.get("correction_factors")),
        database_url=_database_url(cfg),
        save_results=save,
    )

    click.echo(f"Analyzing: {video}")
    click.echo(f"Impact frame {impact_frame} @ {frame_rate:g}fps, backend: {pipeline_config.pose_backend}")

    try:
        with SwingAnalysisPipeline(pipeline_config) as pipeline:
            result = pipeline.analyze(video, impact_frame=impact_frame, frame_rate=frame_rate, label=label)
    except ImpactSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    metrics = result.metrics
    tempo = f"{metrics.tempo_ratio:.2f}" if metrics.tempo_ratio is not None else "undefined"

    click.echo()
    click.echo("Kinematic Sequence:")
    click.echo(f"  Frames with pose: {result.frames_with_pose}/{result.frames_analyzed}")
    click.echo(f"  Load: {metrics.load_duration_ms:.0f} ms")
    click.echo(f"  Fire: {metrics.fire_duration_ms:.0f} ms")
    click.echo(f"  Tempo: {tempo}")
    click.echo(f"  Pelvis: {metrics.pelvis_max_velocity} deg/s")
    click.echo(f"  Torso: {metrics.torso_max_velocity} deg/s")
    click.echo(f"  Arm: {metrics.arm_max_velocity} deg/s")
    if metrics.bat_max_velocity is not None:
        click.echo(f"  Bat: {metrics.bat_max_velocity} deg/s")
    else:
        click.echo(f"  Bat: not available ({metrics.bat_tracking_reason})")
    if result.analysis_id is not None:
        click.echo(f"Saved analysis {result.analysis_id}")


@cli.group()
def db() -> None:
    """Database management commands."""
    pass


@db.command("init")
@click.pass_context
def db_init(ctx: click.Context) -> None:
    """Initialize the database (create tables)."""
    from impact_sync.database.schema import init_db

    db_url = _database_url(ctx.obj["config"])

    click.echo(f"Initializing database: {db_url}")
    init_db(db_url)
    click.echo("Database initialized successfully!")


@db.command("stats")
@click.pass_context
def db_stats(ctx: click.Context) -> None:
    """Show database statistics."""
    from impact_sync.database.operations import DatabaseOperations
    from impact_sync.database.schema import get_session, init_db

    db_url = _database_url(ctx.obj["config"])
    init_db(db_url)

    with get_session(db_url) as session:
        stats = DatabaseOperations(session).get_database_stats()

    click.echo("Database Statistics:")
    click.echo(f"  Recordings: {stats['recordings']}")
    click.echo(f"  Analyses: {stats['analyses']}")
    click.echo(f"  Analyses with bat speed: {stats['analyses_with_bat_speed']}")


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    from impact_sync import __version__

    click.echo("Impact-Synchronized Swing Analysis")
    click.echo(f"Version: {__version__}")


if __name__ == "__main__":
    cli()
