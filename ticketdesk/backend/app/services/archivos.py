# ticketdesk/backend/app/services/archivos.py
"""Upload intake shared by ticket files, comment files and chat files."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import UploadFile

from .. import config
from ..errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def restore_file_names(files: List[UploadedFile], raw_names: Optional[str]) -> List[UploadedFile]:
    """
    Multipart clients mangle non-ASCII names, so the frontend may send the
    real names as a JSON list in `file_names`, index-aligned with `files`.
    """
    if not raw_names:
        return files
    try:
        names = json.loads(raw_names)
    except ValueError:
        return files
    if not isinstance(names, list):
        return files
    for upload, name in zip(files, names):
        if name:
            upload.filename = str(name)
    return files


async def read_uploads(
    files: Optional[List[UploadFile]], raw_names: Optional[str] = None
) -> List[UploadedFile]:
    """Read and validate multipart files; any bad file rejects the request."""
    files = [f for f in (files or []) if f is not None and f.filename]
    if len(files) > config.MAX_FILES_PER_REQUEST:
        raise ValidationError(
            f"Máximo {config.MAX_FILES_PER_REQUEST} archivos por petición."
        )

    uploads = []
    for f in files:
        content_type = f.content_type or "application/octet-stream"
        if content_type not in config.ALLOWED_MIME_TYPES:
            raise ValidationError(f"Tipo de archivo no permitido: {content_type}")
        content = await f.read()
        if len(content) > config.MAX_UPLOAD_BYTES:
            limit_mb = config.MAX_UPLOAD_BYTES // (1024 * 1024)
            raise ValidationError(f"El archivo supera el límite de {limit_mb}MB.")
        uploads.append(UploadedFile(f.filename, content_type, content))
    return restore_file_names(uploads, raw_names)


def serialize_file(row: Any, **extra) -> Dict[str, Any]:
    data = {
        "id": row.id,
        "nombre_original": row.nombre_original,
        "mime_type": row.mime_type,
        "tamanio": row.tamanio,
        "created_at": row.created_at,
    }
    data.update(extra)
    return data
