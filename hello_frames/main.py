"""Standalone demo: two requesters drawing into one shared canvas."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pyframeproxy import (
    RequesterClient,
    SharedResourceHost,
    create_channel_pair,
    load_manifest,
)

try:  # Support running as a script: ``python hello_frames/main.py``
    from .canvas import Canvas
    from .requester import TriangleRequester
except ImportError:  # pragma: no cover - exercised manually
    sys.path.insert(0, str(Path(__file__).parent))
    from canvas import Canvas  # type: ignore
    from requester import TriangleRequester  # type: ignore

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)


async def main(frames: int, manifest: str | None) -> None:
    canvas = Canvas()
    config = load_manifest(manifest) if manifest else None
    host = SharedResourceHost(canvas, config, present=canvas.present)

    clients: list[RequesterClient] = []
    client_tasks = []
    for name in ("left", "right"):
        owner_end, requester_end = create_channel_pair(name)
        client = RequesterClient(name, requester_end, TriangleRequester(name))
        clients.append(client)
        client_tasks.append(asyncio.ensure_future(client.run()))
        await host.attach(name, owner_end)

    for _ in range(frames):
        report = await host.run_frame()
        logger.info("Frame %d flushed %s, canvas %s", report["frame"], report["flushed"], canvas.describe())

    await host.close()
    await asyncio.gather(*client_tasks, return_exceptions=True)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--frames", type=int, default=5)
    parser.add_argument("--manifest", default=None, help="Optional YAML host manifest")
    args = parser.parse_args()
    asyncio.run(main(args.frames, args.manifest))
