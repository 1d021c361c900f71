"""
Audit trail for authenticated mutations.

``get_current_user`` / ``get_current_patient`` remember who is calling on
the request state. Once a POST, PUT, PATCH or DELETE has been answered
successfully (background tasks included) the middleware writes an
``AuditLog`` row for it. Audit failures are logged and never change the
response.
"""

import json
import time
import uuid
from typing import Any, Dict, Optional
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from orthomonitor.api.dependencies import get_db
from orthomonitor.config.config import settings
from orthomonitor.core.utils import logger
from orthomonitor.models.audit_model import AuditLog

AUDITED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
AUDIT_ACTOR_KEY = "audit_actor"
PATIENT_ROLE = "PATIENT"
MAX_CAPTURED_BODY = 64 * 1024


def set_audit_actor(
    request: Request,
    actor_id: uuid.UUID,
    role: str,
    practice_id: Optional[uuid.UUID],
) -> None:
    setattr(
        request.state,
        AUDIT_ACTOR_KEY,
        {"id": actor_id, "role": role, "practice_id": practice_id},
    )


def get_client_ip(scope: Scope) -> Optional[str]:
    """Real client IP, accounting for proxies."""
    for name, value in scope.get("headers") or []:
        if name == b"x-forwarded-for":
            return value.decode("latin-1").split(",")[0].strip()
    client = scope.get("client")
    return client[0] if client else None


def route_template(scope: Scope) -> str:
    """Matched route path (``/api/v1/patients/{patient_id}``), else the raw path."""
    route = scope.get("route")
    return getattr(route, "path", None) or scope.get("path", "")


def resource_type_for(path: str) -> str:
    prefix = settings.API_PREFIX.rstrip("/")
    if prefix and path.startswith(prefix):
        path = path[len(prefix):]
    for part in path.split("/"):
        if part and not part.startswith("{"):
            return part
    return "unknown"


def resource_id_for(body: bytes, path_params: Dict[str, Any]) -> Optional[str]:
    """The ``id`` of the returned resource, else the first ``*_id`` path parameter."""
    if body:
        try:
            data = json.loads(body)
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("id"):
            return str(data["id"])

    for name, value in path_params.items():
        if name == "id" or name.endswith("_id"):
            return str(value)
    return None


class AuditLogMiddleware:
    """Pure ASGI middleware so the row is written after the response completes."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in AUDITED_METHODS:
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        started = time.perf_counter()
        response: Dict[str, Any] = {"status": 500, "json": False, "body": bytearray()}

        async def send_and_capture(message: Message) -> None:
            if message["type"] == "http.response.start":
                response["status"] = message["status"]
                headers = dict(message.get("headers") or [])
                response["json"] = headers.get(b"content-type", b"").startswith(
                    b"application/json"
                )
            elif message["type"] == "http.response.body" and response["json"]:
                chunk = message.get("body", b"")
                if len(response["body"]) + len(chunk) <= MAX_CAPTURED_BODY:
                    response["body"] += chunk
                else:
                    response["json"] = False
                    response["body"].clear()
            await send(message)

        await self.app(scope, receive, send_and_capture)

        actor = state.get(AUDIT_ACTOR_KEY)
        if actor is None or response["status"] >= 400:
            return

        path = route_template(scope)
        entry = AuditLog(
            user_id=actor["id"],
            user_role=actor["role"],
            action=f"{scope['method']} {path}",
            resource_type=resource_type_for(path),
            resource_id=resource_id_for(
                bytes(response["body"]) if response["json"] else b"",
                scope.get("path_params") or {},
            ),
            practice_id=actor["practice_id"],
            ip_address=get_client_ip(scope),
            status_code=response["status"],
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        await self._persist(scope, entry)

    async def _persist(self, scope: Scope, entry: AuditLog) -> None:
        app = scope.get("app")
        overrides = getattr(app, "dependency_overrides", {})
        sessions = overrides.get(get_db, get_db)()
        db = None

        try:
            db = await sessions.__anext__()
            db.add(entry)
            await db.commit()

        except Exception as e:
            logger.log_error(
                {
                    "event": "audit_log_write_failed",
                    "action": entry.action,
                    "user_id": str(entry.user_id),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            if db is not None:
                await db.rollback()

        finally:
            await sessions.aclose()
