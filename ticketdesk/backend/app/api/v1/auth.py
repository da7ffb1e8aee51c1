# ticketdesk/backend/app/api/v1/auth.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import authenticate, create_access_token, get_current_user
from ...db import get_db
from ...models.user import User
from ...schemas.usuario import LoginRequest, TokenResponse, UserRead

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    token = create_access_token({"sub": str(user.id)})
    return TokenResponse(access_token=token, usuario=UserRead.model_validate(user))


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {
        "id": current_user.id,
        "email": current_user.email,
        "nombre": current_user.nombre,
        "rol": current_user.rol,
    }
