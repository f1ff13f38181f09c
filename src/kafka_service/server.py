"""FastAPI application exposing the message registry over HTTP."""
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import AliasChoices, BaseModel, Field

from .broadcast import AsyncSubscription, Broadcaster
from .broker import KafkaBroker, create_from_config
from .config import load_config
from .errors import InvalidInput, MessageNotFound, SubscriptionClosed, UpstreamSendFailed
from .registry import Message, MessageRegistry
from .service import MessageService

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic request/response
# -----------------------------
class ProduceRequest(BaseModel):
    key: str = Field(..., description="Record key sent to the broker.")
    # "message" is what older clients send
    body: str = Field(..., validation_alias=AliasChoices("body", "message"))


class MessageOut(BaseModel):
    id: str
    key: str
    body: str

    @classmethod
    def from_message(cls, message: Message) -> "MessageOut":
        return cls(**message.to_dict())


# -----------------------------
# Server-sent events
# -----------------------------
def format_event(message: Message) -> str:
    return f"data: {json.dumps(message.to_dict(), ensure_ascii=False)}\n\n"


async def event_stream(
    broadcaster: Broadcaster,
    subscription: AsyncSubscription,
    heartbeat: float,
    request: Optional[Request] = None,
) -> AsyncIterator[str]:
    """Yield one SSE frame per published message until the stream ends.

    Runs on the event loop, so an idle client costs no worker thread. A
    comment frame is sent whenever ``heartbeat`` seconds pass without a
    message, and ``request`` (when given) is checked for a disconnect
    before each wait. The subscription is released however the generator
    finishes, including cancellation.
    """
    try:
        while True:
            if request is not None and await request.is_disconnected():
                return
            try:
                message = await subscription.get(timeout=heartbeat)
            except SubscriptionClosed:
                return
            if message is None:
                yield ": keep-alive\n\n"
                continue
            yield format_event(message)
    finally:
        broadcaster.unsubscribe(subscription)


# -----------------------------
# Utilities
# -----------------------------
def _make_service(
    cfg: Dict[str, Any],
    broker: Optional[Any],
    registry: Optional[MessageRegistry],
    broadcaster: Optional[Broadcaster],
) -> MessageService:
    kafka_cfg = cfg.get("kafka", {})
    events_cfg = cfg.get("events", {})
    send_timeout = kafka_cfg.get("send_timeout")
    return MessageService(
        registry if registry is not None else MessageRegistry(),
        broker if broker is not None else create_from_config(cfg),
        broadcaster if broadcaster is not None else Broadcaster(int(events_cfg.get("queue_size", 100))),
        topic=str(kafka_cfg.get("topic", "test-topic")),
        send_timeout=None if send_timeout is None else float(send_timeout),
    )


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    broker: Optional[KafkaBroker] = None,
    registry: Optional[MessageRegistry] = None,
    broadcaster: Optional[Broadcaster] = None,
) -> FastAPI:
    cfg = load_config(config_path)

    cors_origins = cfg.get("server", {}).get("cors_origins", ["*"])
    heartbeat = float(cfg.get("events", {}).get("heartbeat_seconds", 15))

    service = _make_service(cfg, broker, registry, broadcaster)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, flushing producer")
        service.close()

    app = FastAPI(title="Kafka Message Service", version="0.1.0", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MessageNotFound)
    async def not_found(request: Request, exc: MessageNotFound) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(UpstreamSendFailed)
    async def send_failed(request: Request, exc: UpstreamSendFailed) -> JSONResponse:
        return _error(502, exc)

    @app.exception_handler(InvalidInput)
    async def invalid_input(request: Request, exc: InvalidInput) -> JSONResponse:
        return _error(400, exc)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "topic": service.topic,
            "messages": len(service.registry),
            "subscribers": service.broadcaster.subscriber_count,
        }

    @app.post("/produce", response_model=MessageOut)
    def produce(req: ProduceRequest):
        return MessageOut.from_message(service.produce(req.key, req.body))

    @app.get("/messages", response_model=List[MessageOut])
    def list_messages():
        return [MessageOut.from_message(m) for m in service.list()]

    @app.get("/messages/{message_id}", response_model=MessageOut)
    def get_message(message_id: str):
        return MessageOut.from_message(service.get(message_id))

    @app.put("/messages/{message_id}", response_model=MessageOut)
    def update_message(message_id: str, req: ProduceRequest):
        return MessageOut.from_message(service.update(message_id, req.key, req.body))

    @app.delete("/messages/{message_id}")
    def delete_message(message_id: str) -> Dict[str, str]:
        service.delete(message_id)
        return {"deleted": message_id}

    @app.get("/events")
    async def events(request: Request) -> StreamingResponse:
        subscription = service.broadcaster.subscribe_async()
        return StreamingResponse(
            event_stream(service.broadcaster, subscription, heartbeat, request),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    return app
