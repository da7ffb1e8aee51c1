# ticketdesk/backend/app/api/v1/usuarios.py

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import get_current_user, get_password_hash, require_admin
from ...db import get_db
from ...errors import ConflictError, NotFoundError, ValidationError
from ...models.user import ROLES, User
from ...schemas.usuario import OperarioRead, UserCreate, UserRead, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/usuarios", tags=["usuarios"])
operarios_router = APIRouter(prefix="/operarios", tags=["operarios"])


@router.get("/", response_model=List[UserRead])
def list_users(db: Session = Depends(get_db), _: User = Depends(require_admin)):
    return db.query(User).order_by(User.created_at.asc(), User.id.asc()).all()


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    email = payload.email.lower().strip()
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Ya existe un usuario con ese email.")

    user = User(
        email=email,
        nombre=payload.nombre,
        rol=payload.rol,
        password_hash=get_password_hash(payload.password),
        activo=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Ya existe un usuario con ese email.")
    db.refresh(user)
    logger.info("Usuario creado: %s (%s)", user.email, user.rol)
    return user


@router.put("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("Usuario no encontrado.")
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    if user_id == current_user.id:
        raise ValidationError("No puedes eliminar tu propia cuenta.")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("Usuario no encontrado.")
    db.delete(user)
    db.commit()
    return {"ok": True}


@operarios_router.get("/", response_model=List[OperarioRead])
def list_operarios(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return (
        db.query(User)
        .filter(User.rol.in_(ROLES), User.activo.is_(True))
        .order_by(User.nombre.asc())
        .all()
    )
