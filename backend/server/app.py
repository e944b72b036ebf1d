"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Choose the host speech engine (one per session)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.speech.base import SpeechEngine
from adapters.speech.pyttsx3_engine import Pyttsx3Engine
from config import AppConfig
from session.gateway import EngineFactory

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    engine_factory: EngineFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations and fake engines
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    app = FastAPI(title="Word Drill Playback API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Each WebSocket session gets its own engine from this factory
    if engine_factory is None:
        def engine_factory() -> SpeechEngine:
            return build_speech_engine(config)

    app.state.engine_factory = engine_factory

    # Routes
    register_routes(app)

    return app


def build_speech_engine(config: AppConfig) -> SpeechEngine:
    """Build the host speech engine selected by environment variables."""
    if config.speech_engine.lower() == "pyttsx3":
        return Pyttsx3Engine(driver_name=config.pyttsx3_driver)

    raise RuntimeError(f"Unknown SPEECH_ENGINE: {config.speech_engine}")
