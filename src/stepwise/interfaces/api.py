"""HTTP API: FastAPI routes over the session, submission and chat use cases."""

from __future__ import annotations

import json
import logging

from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Annotated, Any, cast

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from stepwise.application.dto import StartReviewCommand, SubmitReviewCommand
from stepwise.application.step_chat import ChatEvent
from stepwise.infrastructure.constants import GitHubHeader
from stepwise.infrastructure.github.webhooks import (
    parse_pull_request_push,
    verify_signature,
)
from stepwise.interfaces.bootstrap import Container
from stepwise.shared.exceptions import (
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    StepwiseError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_USER_HEADER = "X-User-Id"

# =============================================================================
# REQUEST BODIES
# =============================================================================


class StartReviewBody(BaseModel):
    owner: str
    repo: str
    number: int
    installation_id: int | None = None


class SubmitReviewBody(BaseModel):
    event: str
    body: str | None = None


class DraftCommentBody(BaseModel):
    target_type: str | None = None
    body: str | None = None
    path: str | None = None
    side: str | None = None
    line: int | None = None
    start_line: int | None = None
    start_side: str | None = None


class NoteBody(BaseModel):
    severity: str | None = None
    body: str | None = None


class StepStatusBody(BaseModel):
    status: str | None = None


class ChatBody(BaseModel):
    message: str = ""


# =============================================================================
# ERROR MAPPING
# =============================================================================


def _error_response(exc: StepwiseError) -> JSONResponse:
    if isinstance(exc, ValidationError):
        return JSONResponse({"detail": str(exc)}, status_code=400)
    if isinstance(exc, ForbiddenError):
        return JSONResponse({"detail": str(exc)}, status_code=403)
    if isinstance(exc, NotFoundError):
        return JSONResponse({"detail": str(exc)}, status_code=404)
    if isinstance(exc, ConflictError):
        return JSONResponse(
            {
                "detail": "Pull request has new commits; refresh the session first",
                "session_head_sha": exc.expected_sha,
                "remote_head_sha": exc.actual_sha,
            },
            status_code=409,
        )
    if isinstance(exc, ExternalServiceError):
        logger.error("External service failure: %s", exc)
        return JSONResponse(
            {"detail": "Failed to reach an external service"}, status_code=500
        )
    logger.error("Request failed: %s", exc)
    return JSONResponse({"detail": "Internal error"}, status_code=500)


def _sse(event: ChatEvent) -> str:
    return f"event: {event.kind}\ndata: {json.dumps({'text': event.text})}\n\n"


def current_user(
    x_user_id: Annotated[str | None, Header(alias=_USER_HEADER)] = None,
) -> str:
    """The acting user, taken from the ``X-User-Id`` header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


UserId = Annotated[str, Depends(current_user)]

# =============================================================================
# APP
# =============================================================================


def create_app(container: Container) -> FastAPI:
    """Create the FastAPI application bound to ``container``'s services."""
    app = FastAPI(
        title="Stepwise",
        description="Guided, step-by-step pull request review",
        version="0.1.0",
    )
    sessions = container.sessions
    submit = container.submit_review
    chat = container.step_chat

    @app.exception_handler(StepwiseError)
    async def handle_stepwise_error(
        request: Request, exc: StepwiseError
    ) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse({"detail": jsonable_encoder(exc.errors())}, status_code=400)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": "stepwise"}

    # =================================================================
    # Sessions
    # =================================================================

    @app.post("/api/sessions", status_code=status.HTTP_201_CREATED)
    def start_review(body: StartReviewBody, user_id: UserId) -> dict[str, Any]:
        result = sessions.start_review(
            StartReviewCommand(
                owner=body.owner,
                repo=body.repo,
                number=body.number,
                created_by=user_id,
                installation_id=body.installation_id,
            )
        )
        return asdict(result)

    @app.post("/api/sessions/{session_id}/refresh")
    def refresh(session_id: str, user_id: UserId) -> dict[str, Any]:
        return asdict(sessions.refresh(session_id, user_id))

    @app.post(
        "/api/sessions/{session_id}/regenerate-guidance",
        status_code=status.HTTP_202_ACCEPTED,
    )
    def regenerate_guidance(session_id: str, user_id: UserId) -> dict[str, Any]:
        return {"job_id": sessions.regenerate_guidance(session_id)}

    @app.get("/api/sessions/{session_id}/status")
    def session_status(
        session_id: str, user_id: UserId, check_remote: bool = False
    ) -> dict[str, Any]:
        if check_remote:
            sessions.check_staleness(session_id)
        return asdict(sessions.status(session_id))

    @app.post("/api/sessions/{session_id}/submit-review")
    def submit_review(
        session_id: str, body: SubmitReviewBody, user_id: UserId
    ) -> dict[str, Any]:
        result = submit.execute(
            SubmitReviewCommand(session_id=session_id, event=body.event, body=body.body)
        )
        payload = asdict(result)
        payload["failed_count"] = len(result.failed)
        return payload

    # =================================================================
    # Steps
    # =================================================================

    @app.post("/api/steps/{step_id}/draft-comments", status_code=201)
    def create_draft_comment(
        step_id: str, body: DraftCommentBody, user_id: UserId
    ) -> dict[str, Any]:
        draft = sessions.create_draft_comment(
            step_id,
            user_id,
            body.target_type,
            body.body,
            path=body.path,
            side=body.side,
            line=body.line,
            start_line=body.start_line,
            start_side=body.start_side,
        )
        return asdict(draft)

    @app.post("/api/steps/{step_id}/notes", status_code=201)
    def add_note(step_id: str, body: NoteBody, user_id: UserId) -> dict[str, Any]:
        return asdict(
            sessions.add_reviewer_note(step_id, user_id, body.severity, body.body)
        )

    @app.patch("/api/steps/{step_id}")
    def update_step(
        step_id: str, body: StepStatusBody, user_id: UserId
    ) -> dict[str, Any]:
        step = sessions.update_step_status(step_id, body.status)
        return {"id": step.id, "status": step.status}

    @app.post("/api/steps/{step_id}/chat")
    async def step_chat(
        step_id: str, body: ChatBody, user_id: UserId
    ) -> StreamingResponse:
        pending = await run_in_threadpool(chat.start, step_id, user_id, body.message)

        async def events() -> AsyncIterator[str]:
            async for event in chat.reply(pending):
                yield _sse(event)

        return StreamingResponse(events(), media_type="text/event-stream")

    @app.post("/api/draft-comments/{comment_id}/publish")
    def publish_draft(comment_id: str, user_id: UserId) -> dict[str, Any]:
        return asdict(submit.publish_draft(comment_id))

    # =================================================================
    # Webhooks
    # =================================================================

    @app.post("/api/webhooks/github")
    async def github_webhook(request: Request) -> dict[str, Any]:
        body = await request.body()
        secret = container.config.webhook_secret
        if not secret:
            logger.error("GitHub webhook secret not configured")
            raise HTTPException(status_code=500, detail="Webhook secret not configured")

        signature = request.headers.get(GitHubHeader.SIGNATURE, "")
        event_type = request.headers.get(GitHubHeader.EVENT, "")
        delivery_id = request.headers.get(GitHubHeader.DELIVERY, "")
        if not verify_signature(body, signature, secret):
            logger.warning("Invalid webhook signature for delivery %s", delivery_id)
            raise HTTPException(status_code=401, detail="Invalid signature")

        try:
            payload = json.loads(body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Failed to parse webhook payload: %s", e)
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from e
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid JSON payload")

        push = parse_pull_request_push(event_type, cast(dict[str, object], payload))
        if push is None:
            return {"status": "ignored", "delivery_id": delivery_id}
        flagged = await run_in_threadpool(
            sessions.mark_stale_from_push,
            push.owner,
            push.repo,
            push.number,
            push.head_sha,
        )
        return {
            "status": "accepted",
            "delivery_id": delivery_id,
            "stale_sessions": len(flagged),
        }

    return app
