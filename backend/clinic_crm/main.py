import logging
import sys
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from clinic_crm.config import settings
from clinic_crm.database import init_db
from clinic_crm.health import router as health_router
from clinic_crm.routers import auth, users, recurrence, goals
from clinic_crm.middleware import RequestLoggingMiddleware

# Configurar logging para garantir que todos os logs apareçam
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

# Configurar nível de log para SQLAlchemy (reduzir verbosidade)
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Clinic CRM",
    description="Recorrências de procedimentos e metas da clínica",
    version="1.0.0"
)

# CORS middleware - DEVE SER ADICIONADO ANTES DE QUALQUER OUTRO MIDDLEWARE
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count", "X-Total-Pages", "X-Page"],
)

app.add_middleware(RequestLoggingMiddleware)


# Exception handlers para garantir que CORS seja aplicado mesmo em erros
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers={
            "Access-Control-Allow-Origin": request.headers.get("origin", "*"),
            "Access-Control-Allow-Credentials": "true",
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Internal server error: {str(exc)}"},
        headers={
            "Access-Control-Allow-Origin": request.headers.get("origin", "*"),
            "Access-Control-Allow-Credentials": "true",
        }
    )


# Include routers
app.include_router(health_router, tags=["health"])
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(recurrence.router, prefix="/api/recurrence", tags=["recurrence"])
app.include_router(goals.router, prefix="/api/goals", tags=["goals"])


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    init_db()


@app.get("/")
async def root():
    return {"message": "Clinic CRM API", "version": "1.0.0"}
