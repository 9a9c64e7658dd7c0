#!/usr/bin/env python3
"""
Banana Studio CLI
Runs Gemini image generations and key checks from the terminal, driving the
task scheduler from a simple polling tick loop.
"""
import sys
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

import click
from PIL import Image, UnidentifiedImageError


# Seconds between ticks of the CLI host loop
TICK_INTERVAL = 0.05


def setup_logging(debug: bool = False, logs_dir: Optional[Path] = None) -> Path:
    """Configure logging to both console and file.

    Returns:
        Path to the log file
    """
    logs_dir = logs_dir or Path.cwd() / "logs" / "banana"
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Create timestamped log file
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_file = logs_dir / f"banana_{timestamp}.log"

    # File handler - always verbose
    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    file_handler.setFormatter(file_formatter)

    # Console handler - warnings only unless debugging, progress goes to stdout
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    console_formatter = logging.Formatter('%(levelname)s: %(message)s')
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)

    return log_file


def _load_image(path: Optional[str], param_hint: str) -> Optional[Image.Image]:
    if not path:
        return None
    try:
        image = Image.open(path)
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise click.BadParameter(f"'{path}' is not a readable image: {e}", param_hint=param_hint)
    return image


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx: click.Context, debug: bool):
    """Banana Studio - Gemini image generation from the terminal."""
    log_file = setup_logging(debug=debug)

    logger = logging.getLogger(__name__)
    logger.info("=" * 60)
    logger.info("Banana Studio starting")
    logger.info(f"Debug mode: {debug}")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 60)

    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option('--scene', 'scene_path', required=True, type=click.Path(exists=True, dir_okay=False),
              help='Scene image to transform')
@click.option('--prompt', required=True, help='Prompt text')
@click.option('--output', 'output_path', required=True, type=click.Path(dir_okay=False),
              help='Where to save the generated PNG')
@click.option('--aspect-ratio', default="16:9", show_default=True, help='Output aspect ratio')
@click.option('--image-size', type=click.Choice(["1K", "2K", "4K"]), default="1K", show_default=True,
              help='Resolution tier (Pro model only)')
@click.option('--model', 'model_id', default=None, help='Model id (defaults to BANANA_MODEL or the Pro model)')
@click.option('--character', 'character_path', type=click.Path(exists=True, dir_okay=False), default=None)
@click.option('--style', 'style_path', type=click.Path(exists=True, dir_okay=False), default=None)
@click.option('--object', 'object_paths', multiple=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--human', 'human_paths', multiple=True, type=click.Path(exists=True, dir_okay=False))
def generate(
    scene_path: str,
    prompt: str,
    output_path: str,
    aspect_ratio: str,
    image_size: str,
    model_id: Optional[str],
    character_path: Optional[str],
    style_path: Optional[str],
    object_paths: tuple[str, ...],
    human_paths: tuple[str, ...],
):
    """Generate an image from a scene and optional references."""
    from banana_studio.core import (
        GeminiImageClient,
        GenerationRequest,
        ManualTickSource,
        TaskScheduler,
        MAX_OBJECT_REFERENCES,
        MAX_HUMAN_REFERENCES,
    )
    from banana_studio.core.settings import EnvCredentials, get_aspect_ratio, load_settings

    logger = logging.getLogger(__name__)

    if len(object_paths) > MAX_OBJECT_REFERENCES:
        raise click.BadParameter(f"At most {MAX_OBJECT_REFERENCES} object references", param_hint="--object")
    if len(human_paths) > MAX_HUMAN_REFERENCES:
        raise click.BadParameter(f"At most {MAX_HUMAN_REFERENCES} human references", param_hint="--human")

    try:
        ratio = get_aspect_ratio(aspect_ratio)
        settings = load_settings(model_id)
    except ValueError as e:
        raise click.UsageError(str(e))

    request = GenerationRequest(
        prompt=prompt,
        scene_image=_load_image(scene_path, "--scene"),
        aspect_ratio=ratio.ratio,
        image_size=image_size,
        character_reference=_load_image(character_path, "--character"),
        style_reference=_load_image(style_path, "--style"),
        object_references=[_load_image(p, "--object") for p in object_paths],
        human_references=[_load_image(p, "--human") for p in human_paths],
    )

    width, height = ratio.get_resolution(image_size)
    click.echo(f"Generating with {settings.model.model_id} at {ratio.ratio} (~{width}x{height})")

    ticks = ManualTickSource()
    scheduler = TaskScheduler(ticks)
    client = GeminiImageClient(settings=settings)
    outcome = {}

    def on_progress(progress: float, message: str) -> None:
        click.echo(f"\r[{progress:4.0%}] {message:<40}", nl=False)

    def on_complete(result) -> None:
        outcome["result"] = result

    try:
        with client.progress.subscription(on_progress):
            scheduler.start(client.generate(request, EnvCredentials(), on_complete))
            ticks.run_until_idle(interval=TICK_INTERVAL)
    except KeyboardInterrupt:
        scheduler.cancel_owner(None)
        click.echo("\nCancelled.")
        sys.exit(130)
    finally:
        client.transport.close()

    click.echo()
    result = outcome.get("result")
    if result is None:
        raise click.ClickException("Generation did not complete")

    if not result.success:
        logger.error(f"Generation failed: {result.error_message}")
        raise click.ClickException(result.error_message or "Generation failed")

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    result.image.save(output, format="PNG")
    click.echo(f"Saved {output}")
    if result.response_text:
        click.echo(result.response_text)


@main.command(name="validate-key")
@click.option('--api-key', default=None, help='Key to check (defaults to GEMINI_API_KEY)')
def validate_key(api_key: Optional[str]):
    """Check that an API key is accepted by the Gemini API."""
    from banana_studio.core import GeminiImageClient, ManualTickSource, TaskScheduler
    from banana_studio.core.settings import EnvCredentials

    key = api_key or EnvCredentials().get_api_key()
    ticks = ManualTickSource()
    scheduler = TaskScheduler(ticks)
    client = GeminiImageClient()
    outcome = {}

    def on_complete(valid: bool, message: str) -> None:
        outcome["valid"] = valid
        outcome["message"] = message

    try:
        scheduler.start(client.validate_api_key(key, on_complete))
        ticks.run_until_idle(interval=TICK_INTERVAL)
    finally:
        client.transport.close()

    click.echo(outcome.get("message", "Validation did not complete"))
    if not outcome.get("valid"):
        sys.exit(1)


if __name__ == "__main__":
    main()
