#!/usr/bin/env python3
"""
Voice Assistant WebSocket Router
Lets a browser page drive the voice command engine: the page provides
speech recognition, speech synthesis and microphone permission, the server
runs wake word detection and command dispatch.
"""

import asyncio
import json
import logging
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from aidohealth.voice.config import get_voice_config
from aidohealth.voice.messages import ErrorMessage
from aidohealth.voice.websocket_bridge import VoiceBridgeSession

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="AidoHealth Voice Assistant")


async def _pump(websocket: WebSocket, session: VoiceBridgeSession):
    """Send queued server messages until the session closes."""
    while True:
        message = await session.outbox.queue.get()
        if message is None:
            break
        await websocket.send_json(message)


@app.websocket("/voice-assistant")
async def websocket_voice_assistant(websocket: WebSocket):
    """
    One page, one socket, one voice session.
    Client sends 'hello' first, then control messages and browser events.
    """
    await websocket.accept()
    logger.info("🔌 Voice assistant connection established")

    session = VoiceBridgeSession()
    sender = asyncio.create_task(_pump(websocket, session))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"⚠️ Ignoring non-JSON message: {raw[:50]}")
                session.outbox.send(ErrorMessage(message="Message must be valid JSON"))
                continue
            await session.handle(data)

    except WebSocketDisconnect:
        logger.info("🔌 Voice assistant disconnected")
    except Exception as e:
        logger.error(f"❌ Voice assistant WebSocket error: {e}")
    finally:
        logger.info("🧹 Cleaning up voice assistant session")
        session.close()
        try:
            await asyncio.wait_for(sender, timeout=1.0)
        except Exception as e:
            logger.debug(f"Sender stopped: {e}")
            sender.cancel()


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "aidohealth-voice-assistant"}


@app.get("/")
async def root():
    """Root endpoint with service info"""
    config = get_voice_config()
    return {
        "service": "AidoHealth Voice Assistant",
        "wake_word": config.wake_word,
        "language": config.language,
        "intent_extractor": config.intent_extractor.value,
        "endpoints": {
            "websocket": "/voice-assistant",
            "health": "/health"
        }
    }
