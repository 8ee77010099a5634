#!/usr/bin/env python3
"""
Entry point for the AidoHealth voice assistant server.

Serves the voice command WebSocket bridge:
  python main.py --port 8000
or directly with uvicorn:
  uvicorn aidohealth.voice.voice_router:app --reload --port 8000
"""

import argparse
import logging

import uvicorn

from aidohealth.voice.config import get_voice_config


def main():
    """Main entry point for the voice assistant server."""
    config = get_voice_config()

    parser = argparse.ArgumentParser(description="AidoHealth voice assistant server")
    parser.add_argument("--host", default=config.host)
    parser.add_argument("--port", type=int, default=config.port)
    parser.add_argument("--log-level", default=config.log_level)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s"
    )
    logger = logging.getLogger(__name__)

    logger.info("🚀 Starting AidoHealth Voice Assistant")
    logger.info(f"  • Wake word: {config.wake_word}")
    logger.info(f"  • WebSocket: ws://{args.host}:{args.port}/voice-assistant")
    logger.info(f"  • Health: http://{args.host}:{args.port}/health")

    uvicorn.run(
        "aidohealth.voice.voice_router:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
