#!/usr/bin/env python3
"""
Replay captured audio chunks and photos through an agent pipeline.

Files in each directory are replayed in name order as two concurrent sources,
then the pipeline is disabled and the session report is printed.

    python scripts/replay_capture.py --audio-dir capture/audio --photo-dir capture/photos
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Load environment variables from .env file before configuration is read
import dotenv
dotenv.load_dotenv()

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from glassmem.bootstrap import build_pipeline


async def file_source(directory: Path, interval: float):
    """Yield the bytes of every file in ``directory``, pausing ``interval`` seconds between files."""
    for path in sorted(p for p in directory.iterdir() if p.is_file()):
        yield path.read_bytes()
        if interval > 0:
            await asyncio.sleep(interval)


async def replay(audio_dir: Path, photo_dir: Path, interval: float) -> int:
    pipeline = build_pipeline()
    capabilities = await pipeline.initialize()
    print(f"Capabilities: {capabilities}")

    audio = file_source(audio_dir, interval) if audio_dir else None
    photos = file_source(photo_dir, interval) if photo_dir else None
    await pipeline.enable(audio, photos)

    if audio is not None and photos is not None:
        await pipeline.wait_idle()
    else:
        # The missing source never ends; give the other one time to drain
        await asyncio.sleep(interval * 2 + 1.0)

    summary = await pipeline.disable()
    print(summary.render())

    for output in pipeline.recent_outputs(10):
        print(f"  [{output.kind.value}] {output.summary}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Replay captured audio and photos through the agent pipeline")
    parser.add_argument("--audio-dir", type=Path, help="Directory of PCM16 audio chunks")
    parser.add_argument("--photo-dir", type=Path, help="Directory of image files")
    parser.add_argument("--interval", type=float, default=0.1, help="Seconds between replayed files")
    args = parser.parse_args()

    if args.audio_dir is None and args.photo_dir is None:
        parser.error("at least one of --audio-dir or --photo-dir is required")

    for directory in (args.audio_dir, args.photo_dir):
        if directory is not None and not directory.is_dir():
            print(f"ERROR: {directory} is not a directory")
            return 1

    return asyncio.run(replay(args.audio_dir, args.photo_dir, args.interval))


if __name__ == "__main__":
    sys.exit(main())
