"""
Health check
"""
import logging
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from clinic_crm.database import engine

router = APIRouter()
logger = logging.getLogger(__name__)


def database_error() -> str:
    """Mensagem de erro do banco, ou string vazia se `SELECT 1` funcionar"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"❌ [HEALTH] Banco indisponível: {e}")
        return str(e)
    return ""


@router.get("/health")
@router.get("/api/health")
async def health_check():
    error = database_error()
    if error:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "disconnected", "error": error},
        )
    return {"status": "healthy", "database": "connected"}
