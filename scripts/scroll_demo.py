#!/usr/bin/env python3
"""
Scroll Capture Demo
===================

Standalone script that drives a running ScrollStitch server through one
extended capture.

This script:
    1. Starts an extended capture on a tab
    2. Streams scroll observations over the WebSocket scroll feed
    3. Finishes the capture and writes the stitched image to disk
    4. Reports a final summary

Prerequisites:
    - ScrollStitch must be running (python -m scrollstitch.main)
    - Install dependencies: pip install -e ".[demo]"

Usage:
    python scripts/scroll_demo.py --step 600 --steps 6
    python scripts/scroll_demo.py --url http://localhost:8010 --format jpeg
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import time

import requests
import websockets
from websockets.exceptions import ConnectionClosed


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def stream_scrolls(ws_url: str, step: int, steps: int, pause: float) -> int:
    """
    Push evenly spaced scroll observations over the scroll feed.

    Returns:
        Frame count reported by the server after the last observation
    """
    frame_count = 0
    async with websockets.connect(ws_url, close_timeout=5) as ws:
        logger.info(f"Connected to scroll feed: {ws_url}")
        try:
            for index in range(1, steps + 1):
                position = index * step
                await ws.send(json.dumps({"scroll_position": position}))
                reply = json.loads(await ws.recv())
                frame_count = reply.get("frame_count", frame_count)
                logger.info(
                    f"  scroll={position} accepted={reply.get('accepted')} frames={frame_count}"
                )
                await asyncio.sleep(pause)
        except ConnectionClosed as e:
            logger.warning(f"Scroll feed closed: {e}")
    return frame_count


def run_demo(
    base_url: str,
    tab_id: int,
    step: int,
    steps: int,
    pause: float,
    image_format: str,
    output_dir: str,
) -> dict:
    """
    Run one start / scroll / finish cycle.

    Returns:
        Summary dict
    """
    logger.info("=" * 60)
    logger.info("ScrollStitch Extended Capture Demo")
    logger.info("=" * 60)
    logger.info(f"Server: {base_url}")
    logger.info(f"Tab: {tab_id}")
    logger.info(f"Scroll: {steps} steps of {step}px")
    logger.info("=" * 60)

    start_time = time.time()

    response = requests.post(f"{base_url}/tabs/{tab_id}/capture/start", json={}, timeout=10)
    response.raise_for_status()
    logger.info(f"Start: {response.json().get('message')}")

    ws_url = base_url.replace("http", "ws", 1) + f"/ws/tabs/{tab_id}/scroll"
    asyncio.run(stream_scrolls(ws_url, step, steps, pause))

    response = requests.post(
        f"{base_url}/tabs/{tab_id}/capture/finish",
        params={"image_format": image_format},
        timeout=120,
    )
    if response.status_code != 200:
        logger.error(f"Finish failed ({response.status_code}): {response.text}")
        return {"ok": False, "duration": time.time() - start_time}

    filename = response.headers["content-disposition"].split('filename="')[-1].rstrip('"')
    path = os.path.join(output_dir, filename)
    with open(path, "wb") as f:
        f.write(response.content)

    summary = {
        "ok": True,
        "duration": time.time() - start_time,
        "frames": int(response.headers["x-frame-count"]),
        "width": int(response.headers["x-image-width"]),
        "height": int(response.headers["x-image-height"]),
        "path": path,
    }

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {summary['duration']:.1f} seconds")
    logger.info(f"Frames stitched: {summary['frames']}")
    logger.info(f"Output: {summary['width']}x{summary['height']} -> {path}")
    logger.info("=" * 60)

    return summary


def main():
    parser = argparse.ArgumentParser(description="ScrollStitch extended capture demo")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("SCROLLSTITCH_URL", "http://127.0.0.1:8010"),
        help="Base URL of the ScrollStitch server",
    )
    parser.add_argument("--tab", type=int, default=1, help="Tab id (default: 1)")
    parser.add_argument("--step", type=int, default=600, help="Scroll step in CSS px (default: 600)")
    parser.add_argument("--steps", type=int, default=5, help="Number of scroll steps (default: 5)")
    parser.add_argument(
        "--pause",
        type=float,
        default=0.7,
        help="Seconds between scroll observations (default: 0.7)",
    )
    parser.add_argument("--format", choices=["png", "jpeg"], default="png", help="Output format")
    parser.add_argument("--output-dir", type=str, default=".", help="Where to write the image")

    args = parser.parse_args()

    result = run_demo(
        base_url=args.url.rstrip("/"),
        tab_id=args.tab,
        step=args.step,
        steps=args.steps,
        pause=args.pause,
        image_format=args.format,
        output_dir=args.output_dir,
    )

    sys.exit(0 if result["ok"] else 1)


if __name__ == "__main__":
    main()
