# ticketdesk/backend/app/main.py
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .api.v1.auth import router as auth_router
from .api.v1.chat import router as chat_router
from .api.v1.empresas import dispositivos_router
from .api.v1.empresas import router as empresas_router
from .api.v1.estadisticas import router as estadisticas_router
from .api.v1.recursos import router as recursos_router
from .api.v1.tickets import router as tickets_router
from .api.v1.usuarios import operarios_router
from .api.v1.usuarios import router as usuarios_router
from .auth import get_password_hash
from .db import SessionLocal
from .errors import TicketdeskError
from .models.user import ROLE_ADMIN, User

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ticketdesk API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Every failure leaves the API as {"error": "..."}

@app.exception_handler(TicketdeskError)
async def ticketdesk_error_handler(request: Request, exc: TicketdeskError):
    if exc.status_code >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = f"Ruta no encontrada: {request.method} {request.url.path}"
    else:
        message = str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    detalles = [
        {"campo": ".".join(str(p) for p in err.get("loc", ())), "mensaje": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Datos de entrada no válidos.", "detalles": detalles},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Error no controlado en %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Error interno del servidor."},
    )


# Seed admin

@app.on_event("startup")
def seed_admin():
    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD:
        return
    db = SessionLocal()
    try:
        email = config.ADMIN_EMAIL.lower().strip()
        if not db.query(User).filter_by(email=email).first():
            db.add(
                User(
                    email=email,
                    nombre="Administrador",
                    password_hash=get_password_hash(config.ADMIN_PASSWORD),
                    rol=ROLE_ADMIN,
                    activo=True,
                )
            )
            db.commit()
            logger.info("Administrador inicial creado: %s", email)
    finally:
        db.close()


@app.get("/health")
def health_check():
    return {"status": "ok"}


for router in (
    auth_router,
    usuarios_router,
    operarios_router,
    empresas_router,
    dispositivos_router,
    tickets_router,
    recursos_router,
    estadisticas_router,
    chat_router,
):
    app.include_router(router, prefix="/api/v1")
