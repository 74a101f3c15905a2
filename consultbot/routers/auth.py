from fastapi import APIRouter, HTTPException, status

from .. import schemas
from ..auth import create_access_token, verify_password

router = APIRouter(prefix="/api/admin", tags=["Authentication"])


@router.post("/login", response_model=schemas.LoginResponse)
def admin_login(login_data: schemas.LoginRequest):
    """Авторизація адміна"""
    if not verify_password(login_data.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неправильний пароль",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(data={"role": "admin"})
    return schemas.LoginResponse(access_token=access_token)
