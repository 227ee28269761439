"""
HTTP API for the Persona Chat Assistant.

Endpoints:
- POST /api/chat: send the latest user message, get the persona's reply
- POST /api/sessions: start a session with a welcome message
- POST /api/sessions/{session_id}/persona: switch persona, history kept
- GET  /api/sessions/{session_id}/history and /context
- GET  /api/personas, GET /health

Failures are returned as ``{"error": <localized message>}`` with status
400 (malformed input), 504 (generation timeout) or 500 (anything else).
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.settings import Settings
from exceptions import (
    ChatServiceError,
    ValidationError,
    GenerationTimeoutError,
    GENERIC_ERROR_MESSAGE,
)
from memory.models import ConversationSummary, Message
from orchestrator import ResponseOrchestrator
from schemas.context import Persona, Role

logger = logging.getLogger(__name__)

MALFORMED_REQUEST_MESSAGE = "メッセージの形式が正しくありません。"


# ============================================================
# Request / Response Schemas
# ============================================================

class RequestMessage(BaseModel):
    role: Role
    content: str


class ChatRequest(BaseModel):
    """Chat payload; only the latest user message is sent to the model."""
    messages: List[RequestMessage] = Field(min_length=1)
    persona: Optional[Persona] = None
    session_id: Optional[str] = None
    include_context: bool = True
    include_history: bool = False


class ChatResponse(BaseModel):
    response: str
    session_id: str
    context: Optional[ConversationSummary] = None
    history: Optional[List[Message]] = None
    timestamp: int


class StartSessionRequest(BaseModel):
    persona: Optional[Persona] = None
    user_name: Optional[str] = Field(None, max_length=50)


class StartSessionResponse(BaseModel):
    session_id: str
    persona: Persona
    greeting: str


class PersonaRequest(BaseModel):
    persona: Persona


class PersonaResponse(BaseModel):
    session_id: str
    persona: Persona
    greeting: str
    replayed: int
    replay_failures: int


class PersonaInfo(BaseModel):
    id: Persona
    quick_phrases: List[str]


# ============================================================
# Application
# ============================================================

def _status_for(error: ChatServiceError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, GenerationTimeoutError):
        return 504
    return 500


def create_app(orchestrator: Optional[ResponseOrchestrator] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        orchestrator: Orchestrator to serve; built from Settings() on first
            use when omitted

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="Persona Chat Assistant")
    app.state.orchestrator = orchestrator

    def get_orchestrator() -> ResponseOrchestrator:
        if app.state.orchestrator is None:
            app.state.orchestrator = ResponseOrchestrator(settings=Settings())
        return app.state.orchestrator

    @app.exception_handler(RequestValidationError)
    async def handle_malformed_request(request: Request, exc: RequestValidationError):
        logger.info(f"Malformed request to {request.url.path}: {exc.errors()}")
        return JSONResponse({"error": MALFORMED_REQUEST_MESSAGE}, status_code=400)

    @app.exception_handler(ChatServiceError)
    async def handle_chat_error(request: Request, exc: ChatServiceError):
        status = _status_for(exc)
        if status >= 500:
            logger.error(f"Request to {request.url.path} failed: {exc}")
        return JSONResponse({"error": exc.user_message}, status_code=status)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(f"Unexpected error on {request.url.path}")
        return JSONResponse({"error": GENERIC_ERROR_MESSAGE}, status_code=500)

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    @app.get("/api/personas", response_model=List[PersonaInfo])
    def list_personas():
        builder = get_orchestrator().prompt_builder
        return [
            PersonaInfo(id=persona, quick_phrases=builder.get_quick_phrases(persona))
            for persona in Persona
        ]

    @app.post("/api/sessions", response_model=StartSessionResponse)
    def start_session(data: StartSessionRequest):
        session = get_orchestrator().start_session(
            persona=data.persona,
            user_name=data.user_name
        )
        return StartSessionResponse(
            session_id=session.session_id,
            persona=session.persona,
            greeting=session.messages[-1].content
        )

    @app.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True)
    def chat(data: ChatRequest):
        orchestrator = get_orchestrator()

        latest = next(
            (msg for msg in reversed(data.messages) if msg.role == Role.USER),
            None
        )
        if latest is None:
            raise ValidationError("No user message in request", user_message=MALFORMED_REQUEST_MESSAGE)

        # Reject bad input before the persona switch touches the session
        orchestrator.validate_message(latest.content)

        session_id = data.session_id
        if data.persona is not None:
            session = orchestrator.get_or_create_session(session_id)
            session_id = session.session_id
            if session.persona != data.persona:
                orchestrator.switch_persona(session_id, data.persona)

        result = orchestrator.generate_response(session_id, latest.content)

        return ChatResponse(
            response=result.content,
            session_id=result.session_id,
            context=result.summary if data.include_context else None,
            history=result.history if data.include_history else None,
            timestamp=result.timestamp
        )

    @app.post("/api/sessions/{session_id}/persona", response_model=PersonaResponse)
    def switch_persona(session_id: str, data: PersonaRequest):
        result = get_orchestrator().switch_persona(session_id, data.persona)
        return PersonaResponse(
            session_id=result.session_id,
            persona=result.persona,
            greeting=result.greeting,
            replayed=result.report.replayed,
            replay_failures=len(result.report.failed)
        )

    @app.get("/api/sessions/{session_id}/history", response_model=List[Message])
    def get_history(session_id: str):
        history = get_orchestrator().get_history(session_id)
        if history is None:
            return JSONResponse({"error": "セッションが見つかりません。"}, status_code=404)
        return history

    @app.get("/api/sessions/{session_id}/context", response_model=ConversationSummary)
    def get_context(session_id: str):
        context = get_orchestrator().get_context(session_id)
        if context is None:
            return JSONResponse({"error": "セッションが見つかりません。"}, status_code=404)
        return context

    return app


app = create_app()
