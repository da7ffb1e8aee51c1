# ticketdesk/backend/app/api/v1/empresas.py

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...db import get_db
from ...errors import NotFoundError
from ...models.empresa import Dispositivo, Empresa
from ...models.user import User
from ...schemas.empresa import (
    DispositivoCreate,
    DispositivoRead,
    DispositivoUpdate,
    EmpresaCreate,
    EmpresaRead,
    EmpresaUpdate,
)

router = APIRouter(prefix="/empresas", tags=["empresas"])
dispositivos_router = APIRouter(prefix="/dispositivos", tags=["dispositivos"])


def _get_or_404(db: Session, model, obj_id: int, label: str):
    obj = db.get(model, obj_id)
    if obj is None:
        raise NotFoundError(f"{label} no encontrado")
    return obj


def _apply(obj, changes: dict) -> None:
    for field, value in changes.items():
        setattr(obj, field, value)


@router.get("/", response_model=List[EmpresaRead])
def list_empresas(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return db.query(Empresa).order_by(Empresa.nombre.asc()).all()


@router.post("/", response_model=EmpresaRead, status_code=status.HTTP_201_CREATED)
def create_empresa(
    payload: EmpresaCreate,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    empresa = Empresa(**payload.model_dump())
    db.add(empresa)
    db.commit()
    db.refresh(empresa)
    return empresa


@router.put("/{empresa_id}", response_model=EmpresaRead)
def update_empresa(
    empresa_id: int,
    payload: EmpresaUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    empresa = _get_or_404(db, Empresa, empresa_id, "Empresa")
    _apply(empresa, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(empresa)
    return empresa


@router.delete("/{empresa_id}")
def delete_empresa(
    empresa_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    empresa = _get_or_404(db, Empresa, empresa_id, "Empresa")
    db.delete(empresa)
    db.commit()
    return {"ok": True}


@dispositivos_router.get("/", response_model=List[DispositivoRead])
def list_dispositivos(
    empresa_id: Optional[int] = None,
    categoria: Optional[str] = None,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    query = db.query(Dispositivo)
    if empresa_id:
        query = query.filter(Dispositivo.empresa_id == empresa_id)
    if categoria:
        query = query.filter(Dispositivo.categoria == categoria)
    return query.order_by(Dispositivo.nombre.asc()).all()


@dispositivos_router.post("/", response_model=DispositivoRead, status_code=status.HTTP_201_CREATED)
def create_dispositivo(
    payload: DispositivoCreate,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    _get_or_404(db, Empresa, payload.empresa_id, "Empresa")
    dispositivo = Dispositivo(**payload.model_dump())
    db.add(dispositivo)
    db.commit()
    db.refresh(dispositivo)
    return dispositivo


@dispositivos_router.put("/{dispositivo_id}", response_model=DispositivoRead)
def update_dispositivo(
    dispositivo_id: int,
    payload: DispositivoUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    dispositivo = _get_or_404(db, Dispositivo, dispositivo_id, "Dispositivo")
    _apply(dispositivo, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(dispositivo)
    return dispositivo


@dispositivos_router.delete("/{dispositivo_id}")
def delete_dispositivo(
    dispositivo_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    dispositivo = _get_or_404(db, Dispositivo, dispositivo_id, "Dispositivo")
    db.delete(dispositivo)
    db.commit()
    return {"ok": True}
