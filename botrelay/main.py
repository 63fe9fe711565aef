import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from botrelay.config import settings
from botrelay.database import Base, SessionLocal, engine
from botrelay.logging_config import get_logger, setup_logging
from botrelay.routers import bots, webhook
from botrelay.services.channel import ChatflowChannel
from botrelay.services.dispatcher import Dispatcher
from botrelay.services.providers import build_providers

setup_logging(settings.log_level, json_output=not settings.debug)

logger = get_logger("main")


def build_dispatcher() -> Dispatcher:
    providers = build_providers(settings.family_names, timeout_seconds=settings.provider_timeout_seconds)
    return Dispatcher(
        session_factory=SessionLocal,
        providers=providers,
        channel_factory=ChatflowChannel.for_instance,
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Bot Relay API",
        description="Routes WhatsApp conversations to chatbot backends",
        version="0.1.0",
    )

    cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
    cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhook.router)
    app.include_router(bots.router)
    app.state.dispatcher = build_dispatcher()

    @app.on_event("startup")
    async def create_tables() -> None:
        Base.metadata.create_all(bind=engine)
        logger.info("Bot relay started", extra={"context": {"families": settings.family_names}})

    @app.on_event("shutdown")
    async def stop_dispatcher() -> None:
        # Pending debounce buffers are dropped, not flushed.
        app.state.dispatcher.shutdown()
        logger.info("Bot relay stopped")

    @app.get("/health")
    async def health():
        return {"status": "ok", "families": app.state.dispatcher.families}

    return app


app = create_app()
