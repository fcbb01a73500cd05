"""CLI entry point: turn a short brief into lyrics and a composed track."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

from songsmith.config import Settings
from songsmith.models.generation import GenerationRequest
from songsmith.services.composition_service import StubCompositionService
from songsmith.services.errors import SongsmithError
from songsmith.services.pipeline import SongPipeline

log = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate song lyrics and a matching music track from a short brief."
    )
    parser.add_argument("--genre", "-g", required=True, help="Song type, e.g. Pop, Jazz.")
    parser.add_argument("--mood", "-m", required=True, help="Lyrics style, e.g. Upbeat.")
    parser.add_argument(
        "--description", "-d", required=True, help="What the song should be about."
    )
    parser.add_argument(
        "--lyrics-only",
        action="store_true",
        help="Stop after generating lyrics.",
    )
    parser.add_argument(
        "--stub-composition",
        action="store_true",
        help="Use an offline composition stub instead of the composition API.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log debug output to stderr.",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Output directory (default: outputs/YYYY-MM-DD/HH-MM-SS).",
    )
    return parser.parse_args(argv)


def setup_output_dir(custom_dir: str | None = None) -> Path:
    """Create output directory with timestamp."""
    if custom_dir:
        output_dir = Path(custom_dir)
    else:
        now = datetime.now()
        output_dir = Path("outputs") / now.strftime("%Y-%m-%d") / now.strftime("%H-%M-%S")

    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def setup_logging(output_dir: Path, verbose: bool = False) -> None:
    """Setup logging to both console and file."""
    log_level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(output_dir / "execution.log")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)


async def run(args: argparse.Namespace, settings: Settings, output_dir: Path) -> int:
    request = GenerationRequest(
        genre=args.genre, mood=args.mood, description=args.description
    )
    # Lyrics-only runs never compose, so they need no composition credential.
    composition = None
    if args.stub_composition or args.lyrics_only:
        composition = StubCompositionService()

    try:
        pipeline = SongPipeline.from_settings(settings, composition=composition)

        lyrics = await pipeline.generate_lyrics(request)
        (output_dir / "lyrics.txt").write_text(lyrics.text + "\n")
        print(lyrics.text)
        if not lyrics.ok:
            return 1
        if args.lyrics_only:
            return 0

        result = await pipeline.compose(lyrics.text, request)
    except SongsmithError as e:
        log.error("Generation failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result is None:
        print("Composition cancelled", file=sys.stderr)
        return 1

    (output_dir / "result.json").write_text(result.model_dump_json(indent=2))
    print()
    print(f"Audio: {result.audio_url}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    output_dir = setup_output_dir(args.output_dir)
    setup_logging(output_dir, args.verbose)

    settings = Settings.from_env()
    start_time = time.time()
    log.info("=" * 80)
    log.info("Starting song generation")
    log.info("  - Genre: %s", args.genre)
    log.info("  - Mood: %s", args.mood)
    log.info("  - Lyrics service: %s", settings.lyrics_base_url)
    log.info("  - Composition: %s", "stub" if args.stub_composition else settings.beatoven_base_url)
    log.info("  - Output directory: %s", output_dir)
    log.info("=" * 80)

    status = asyncio.run(run(args, settings, output_dir))

    log.info("Finished with status %d in %.2fs", status, time.time() - start_time)
    (output_dir / "run.json").write_text(
        json.dumps({"status": status, "elapsed_seconds": round(time.time() - start_time, 2)})
    )
    return status


if __name__ == "__main__":
    sys.exit(main())
