import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from clinic_crm.config import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Limite do bcrypt, em bytes
BCRYPT_MAX_BYTES = 72


def _bcrypt_safe(password: str) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) <= BCRYPT_MAX_BYTES:
        return password
    return encoded[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(_bcrypt_safe(password))


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """JWT assinado com `sub` = id do usuário; expira conforme a configuração"""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims = {**data, "exp": expire}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    """Payload do token, ou None se estiver expirado ou inválido"""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except ExpiredSignatureError:
        logger.warning("⚠️ [AUTH] Token expirado")
    except JWTError as e:
        logger.error(f"❌ [AUTH] Token inválido: {type(e).__name__}: {e}")
    return None
