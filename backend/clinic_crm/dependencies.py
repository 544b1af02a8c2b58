import logging
from fastapi import Depends, HTTPException, status, Request
from sqlmodel import Session
from clinic_crm.database import get_session
from clinic_crm.models import User, UserRole
from clinic_crm.auth import decode_access_token
from clinic_crm.config import settings
from clinic_crm.services.query_cache import QueryCache

logger = logging.getLogger(__name__)

# Compartilhado entre requisições; as rotas que alteram dados invalidam as chaves afetadas
query_cache = QueryCache(stale_seconds=settings.cache_stale_seconds)


def get_query_cache() -> QueryCache:
    return query_cache


def get_current_user(
    request: Request,
    session: Session = Depends(get_session)
) -> User:
    """Get current authenticated user from JWT token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    authorization = request.headers.get("Authorization") or request.headers.get("authorization")
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Extrair o token do header "Bearer <token>"
    try:
        scheme, token = authorization.split(maxsplit=1)
    except ValueError:
        logger.error("Invalid Authorization header format")
        raise credentials_exception
    if scheme.lower() != "bearer" or not token:
        logger.error(f"Invalid authorization scheme: {scheme}")
        raise credentials_exception

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        logger.error("No user_id in token payload")
        raise credentials_exception

    user = session.get(User, user_id)
    if user is None:
        logger.error(f"User {user_id} not found in database")
        raise credentials_exception

    # Lido pelo middleware de log
    request.state.user_id = user.id
    return user


def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """Get current active user"""
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive"
        )
    return current_user


def require_manager(
    current_user: User = Depends(get_current_active_user)
) -> User:
    """
    Ações em massa (distribuição, identificação de recorrências) são restritas
    a administradores e coordenadores.
    """
    if current_user.role not in (UserRole.ADMIN, UserRole.COORDINATOR):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Apenas administradores e coordenadores podem executar esta ação"
        )
    return current_user
