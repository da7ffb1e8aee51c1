# ticketdesk/backend/app/api/v1/estadisticas.py

from datetime import date
from typing import Callable, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...db import get_db
from ...deps import get_clock
from ...models.user import User
from ...services import stats

router = APIRouter(prefix="/estadisticas", tags=["estadisticas"])


@router.get("/resumen")
def resumen(
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
    _: User = Depends(require_admin),
):
    return stats.resumen(db, clock)


@router.get("/operarios")
def operarios(
    desde: Optional[date] = None,
    hasta: Optional[date] = None,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    return stats.por_operario(db, desde, hasta)


@router.get("/empresas")
def empresas(
    desde: Optional[date] = None,
    hasta: Optional[date] = None,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
):
    return stats.por_empresa(db, desde, hasta)
