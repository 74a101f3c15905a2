from datetime import datetime, timedelta
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from .config import settings

# Налаштування JWT
ALGORITHM = "HS256"

security = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """Створити JWT токен"""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(days=settings.access_token_expire_days))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def verify_password(plain_password: str) -> bool:
    """Перевірити пароль адміна"""
    return bool(settings.admin_password) and plain_password == settings.admin_password


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Перевірити JWT токен"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Не авторизовано",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(credentials.credentials, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception

    if payload.get("role") != "admin":
        raise credentials_exception
    return payload


def get_current_admin(token_data: dict = Depends(verify_token)) -> dict:
    """Отримати поточного адміна (для використання в endpoints)"""
    return token_data
