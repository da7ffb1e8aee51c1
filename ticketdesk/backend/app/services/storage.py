# ticketdesk/backend/app/services/storage.py
"""
Object storage for attachments.

Objects live under STORAGE_ROOT/<bucket>/<path>. Keys are generated
(see build_storage_path); the user's filename is kept only as metadata.
Retrieval goes through short-lived signed URLs: a JWT naming the bucket
and path, resolved by the /recursos/descargas/{token} route.
"""

import logging
import os
import time
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Tuple

from jose import JWTError, jwt

from .. import config
from ..errors import AuthorizationError, NotFoundError, UpstreamError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DOWNLOAD_PATH = "/api/v1/recursos/descargas"


def build_storage_path(*segments, filename: str) -> str:
    """`{segments...}/{millis}_{random}{ext}`, e.g. tickets/12/1700000000000_a1b2c3d4e.pdf"""
    ext = os.path.splitext(filename or "")[1].lower() or ".bin"
    safe_name = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}{ext}"
    return "/".join([*(str(s) for s in segments), safe_name])


class Storage:
    """Interface used by the routes; LocalStorage is the shipped backend."""

    bucket: str

    def put(self, path: str, content: bytes, content_type: str) -> None:
        raise NotImplementedError

    def signed_url(self, path: str, expires_in: int = config.SIGNED_URL_TTL) -> str:
        raise NotImplementedError

    def delete(self, paths: Iterable[str]) -> None:
        raise NotImplementedError

    def open_path(self, path: str) -> Path:
        raise NotImplementedError


class LocalStorage(Storage):
    def __init__(self, bucket: str, root: str = config.STORAGE_ROOT, secret: str = config.SECRET_KEY):
        self.bucket = bucket
        self.base = Path(root).resolve() / bucket
        self.secret = secret

    def _resolve(self, path: str) -> Path:
        target = (self.base / path).resolve()
        if self.base not in target.parents:
            raise UpstreamError(f"Ruta de almacenamiento no válida: {path}")
        return target

    def put(self, path: str, content: bytes, content_type: str) -> None:
        target = self._resolve(path)
        if target.exists():
            raise UpstreamError(f"El objeto ya existe: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise UpstreamError(f"No se pudo guardar el archivo: {exc}")

    def signed_url(self, path: str, expires_in: int = config.SIGNED_URL_TTL) -> str:
        expire = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        token = jwt.encode(
            {"bucket": self.bucket, "path": path, "exp": expire},
            self.secret,
            algorithm=ALGORITHM,
        )
        return f"{DOWNLOAD_PATH}/{token}"

    def delete(self, paths: Iterable[str]) -> None:
        for path in paths:
            target = self._resolve(path)
            try:
                target.unlink(missing_ok=True)
            except OSError as exc:
                raise UpstreamError(f"No se pudo eliminar {path}: {exc}")
            logger.info("[Storage] %s/%s eliminado", self.bucket, path)

    def open_path(self, path: str) -> Path:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError("Archivo no encontrado.")
        return target


def read_download_token(token: str, secret: str = config.SECRET_KEY) -> Tuple[str, str]:
    """Return (bucket, path) for a valid, unexpired signed-URL token."""
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthorizationError("Enlace de descarga inválido o caducado.")
    bucket, path = payload.get("bucket"), payload.get("path")
    if not bucket or not path:
        raise AuthorizationError("Enlace de descarga inválido o caducado.")
    return bucket, path
