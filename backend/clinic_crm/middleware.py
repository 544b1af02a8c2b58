import logging
import time
from typing import Optional
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SKIP_PATHS = ["/api/health", "/api/docs", "/api/openapi.json", "/api/redoc"]


def get_user_id_from_request(request: Request) -> Optional[str]:
    """Usuário autenticado pela dependência `get_current_user`, se houver"""
    return getattr(request.state, "user_id", None)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Registra método, rota, status e duração das chamadas de API"""

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith("/api/"):
            return await call_next(request)
        if any(request.url.path.startswith(path) for path in SKIP_PATHS):
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        user_id = get_user_id_from_request(request)
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({duration_ms:.1f}ms, user={user_id or '-'})"
        )
        return response
