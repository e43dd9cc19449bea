"""
FastAPI Application Entry Point

Voice Ordering Core - HTTP adapter for the voice command pipeline.
Supports both in-memory services (development) and the SQL store (production).

Endpoints:
    - POST /voice/interpret: Classify an utterance
    - POST /voice/execute: Execute an already-classified intent
    - POST /voice/process: Interpret and execute in one call
    - POST /voice/feedback: Confirm or correct a prediction
    - POST /voice/transactions/commit: Commit a pending checkout
    - POST /voice/sessions/{client_id}/end: End a client session
    - GET /voice/metrics: Execution and learning metrics
    - GET /health: System health check

Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voice_ordering.core.config import get_settings, setup_logging
from voice_ordering.pipeline import VoiceCommandService, create_voice_service
from voice_ordering.schemas import (
    CommitRequest,
    ErrorResponse,
    ExecuteRequest,
    FeedbackRequest,
    FeedbackResponse,
    HealthResponse,
    InterpretRequest,
    Interpretation,
    ProcessResponse,
    Result,
)

logger = logging.getLogger(__name__)


def get_service(request: Request) -> VoiceCommandService:
    return request.app.state.voice_service


def create_app(service: Optional[VoiceCommandService] = None) -> FastAPI:
    """
    Build the FastAPI application around a voice command service.

    Args:
        service: Prebuilt service (tests inject one with a fixed clock);
            defaults to create_voice_service()
    """
    settings = get_settings()

    # =========================================================================
    # APPLICATION LIFECYCLE
    # =========================================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application startup and shutdown events.
        """
        logger.info("=" * 60)
        logger.info(f"🚀 Starting {settings.app_name}")
        logger.info(f"   Version: {settings.app_version}")
        logger.info(f"   Environment: {settings.env_mode.value}")
        logger.info(f"   Debug: {settings.debug}")
        logger.info("=" * 60)

        voice_service = app.state.voice_service
        await voice_service.start()
        logger.info(f"✅ Store: {voice_service.store.provider_name}")
        logger.info(f"✅ Ordering callbacks: {voice_service.dispatcher.callbacks.provider_name}")

        if settings.use_real_services:
            missing = settings.validate_production_config()
            if missing:
                logger.warning(f"⚠️ Missing production config: {missing}")

        logger.info("✅ Application ready!")

        yield  # Application runs

        logger.info("Shutting down...")
        await voice_service.stop()
        logger.info("✅ Cleanup complete")

    # =========================================================================
    # APPLICATION INSTANCE
    # =========================================================================

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Voice command interpretation and dispatch for food ordering. "
            "Turns transcribed utterances into validated ordering actions."
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.voice_service = service or create_voice_service(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # ROOT & HEALTH ENDPOINTS
    # =========================================================================

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """API root with navigation links."""
        return {
            "message": f"🎙️ Welcome to {settings.app_name}",
            "version": settings.app_version,
            "environment": settings.env_mode.value,
            "documentation": "/docs",
            "health": "/health",
        }

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="System Health Check",
    )
    async def health_check(request: Request) -> HealthResponse:
        """Verify the store is reachable and report queue state."""
        return await get_service(request).health()

    # =========================================================================
    # VOICE ENDPOINTS
    # =========================================================================

    @app.post(
        "/voice/interpret",
        response_model=Interpretation,
        responses={422: {"model": ErrorResponse}},
        tags=["Voice"],
        summary="Interpret Utterance",
    )
    async def interpret(payload: InterpretRequest, request: Request) -> Interpretation:
        """Classify a transcribed utterance without executing it."""
        if not payload.text:
            raise HTTPException(status_code=422, detail="Text must not be empty")
        return await get_service(request).interpret(payload.text, payload.context)

    @app.post(
        "/voice/execute",
        tags=["Voice"],
        summary="Execute Intent",
    )
    async def execute(payload: ExecuteRequest, request: Request) -> Result:
        """Execute an intent produced by an earlier interpretation."""
        return await get_service(request).execute(
            payload.intent,
            payload.entities,
            payload.context,
            strategy=payload.strategy,
        )

    @app.post(
        "/voice/process",
        response_model=ProcessResponse,
        tags=["Voice"],
        summary="Interpret and Execute",
    )
    async def process(payload: InterpretRequest, request: Request) -> ProcessResponse:
        """Interpret the utterance and execute it, or ask for clarification."""
        if not payload.text:
            raise HTTPException(status_code=422, detail="Text must not be empty")
        logger.info(f"Processing utterance for session {payload.context.session_id}")
        return await get_service(request).process(payload.text, payload.context)

    @app.post(
        "/voice/feedback",
        response_model=FeedbackResponse,
        tags=["Learning"],
        summary="Prediction Feedback",
    )
    async def feedback(payload: FeedbackRequest, request: Request) -> FeedbackResponse:
        """Record whether a predicted intent matched what the user meant."""
        return await get_service(request).feedback(
            payload.text,
            payload.predicted_intent,
            payload.expected_intent,
            payload.context,
        )

    @app.post(
        "/voice/transactions/commit",
        tags=["Voice"],
        summary="Commit Transaction",
    )
    async def commit_transaction(payload: CommitRequest, request: Request) -> Result:
        """Complete a checkout opened by the checkout intent."""
        return await get_service(request).commit_transaction(payload.transaction_id)

    @app.post(
        "/voice/sessions/{client_id}/end",
        tags=["Voice"],
        summary="End Session",
    )
    async def end_session(client_id: str, request: Request) -> dict[str, Any]:
        """Close the client's session and deactivate its context records."""
        session = get_service(request).end_session(client_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"No active session for '{client_id}'")
        return {
            "success": True,
            "session_id": session.id,
            "ended_at": session.ended_at.isoformat(),
        }

    @app.get(
        "/voice/metrics",
        tags=["Voice"],
        summary="Execution Metrics",
    )
    async def metrics(request: Request) -> dict[str, Any]:
        """Execution counters, per-intent accuracy and queue state."""
        return get_service(request).metrics_snapshot()

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all exception handler."""
        logger.exception(f"Unhandled exception: {exc}")

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal Server Error",
                "detail": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(logging.DEBUG if settings.debug else logging.INFO)
    uvicorn.run(
        "voice_ordering.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    run()
