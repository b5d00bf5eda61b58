"""Security dependencies and API access logging"""
import logging
import secrets
from typing import Optional
from fastapi import Header, HTTPException, Request

from app.core.config import settings

security_logger = logging.getLogger("security")
api_access_logger = logging.getLogger("api_access")


def require_admin(x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key")) -> str:
    """Dependency: Require the shared admin key. Returns an actor label for audit fields."""
    if not settings.ADMIN_API_KEY:
        security_logger.error("ADMIN_API_KEY not configured - admin routes are disabled")
        raise HTTPException(503, "Admin access not configured")

    if not x_admin_key or not secrets.compare_digest(x_admin_key.encode("utf-8"), settings.ADMIN_API_KEY.encode("utf-8")):
        security_logger.warning("Admin request rejected: invalid or missing X-Admin-Key")
        raise HTTPException(403, "Admin access required")

    return "admin"


def get_client_identifier(request: Request) -> str:
    """Best-effort client identifier (proxy aware) for access logs"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def log_api_access(request: Request, status_code: int, error: Optional[str] = None) -> None:
    """Log API access for auditing"""
    message = f"{request.method} {request.url.path} {status_code} client={get_client_identifier(request)}"
    if error:
        api_access_logger.warning(f"{message} error={error}")
    elif status_code >= 400:
        api_access_logger.warning(message)
    else:
        api_access_logger.info(message)
