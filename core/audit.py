"""
Audit Middleware Module

Records billing actions in the audit_logs table: every successful POST under
/api, plus failed pay and verify attempts so declined or broken payments leave
a trace next to the billing they belong to.
"""

from collections.abc import Callable

import structlog
from fastapi import Request, Response
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from db import models
from db.models import AuditAction

log = structlog.get_logger(__name__)


def is_payment_path(path: str) -> bool:
    return path.endswith("/pay") or path.endswith("/verify")


def determine_action(request: Request, response: Response) -> AuditAction:
    """Determine the audit action based on the request path."""
    path = request.url.path.rstrip("/")
    if is_payment_path(path) and response.status_code >= 400:
        return AuditAction.payment_failed
    if path.endswith("/pay"):
        return AuditAction.payment_authorized
    if path.endswith("/verify"):
        return AuditAction.payment_captured
    return AuditAction.billing_created


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware to audit billing and payment requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path.rstrip("/")
        if request.method != "POST" or not path.startswith("/api"):
            return await call_next(request)

        # Read before the route consumes the stream; Starlette replays it downstream
        body = await request.body()
        response = await call_next(request)

        succeeded = 200 <= response.status_code < 400
        if not succeeded and not is_payment_path(path):
            return response

        # grab the route's session if it exists, else skip audit
        db: Session | None = getattr(request.state, "db", None)
        if not db:
            return response

        try:
            db.add(
                models.AuditLog(
                    billing_id=getattr(request.state, "billing_id", None),
                    action=determine_action(request, response),
                    payload={
                        "method": request.method,
                        "path": path,
                        "status": response.status_code,
                        "body": body.decode(errors="replace")[:500],
                    },
                )
            )
            db.commit()
        except Exception as e:
            db.rollback()
            log.error("audit.session_failed", path=path, error=str(e))

        return response
