# app/kyc/storage.py
from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from app.config import KycUploadConfig
from app.errors import ValidationError

logger = logging.getLogger("gigsec.kyc.storage")

_EXTENSIONS: dict[str, set[str]] = {
    "image/jpeg": {".jpg", ".jpeg"},
    "image/jpg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "application/pdf": {".pdf"},
}


@dataclass(frozen=True)
class UploadedDocument:
    field: str
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return Path(self.filename or "").suffix.lower()


def validate_document(doc: UploadedDocument, cfg: KycUploadConfig) -> None:
    mime = (doc.content_type or "").lower()
    if mime not in cfg.allowed_mime_types:
        raise ValidationError(
            f"{doc.field}: file type {mime or 'unknown'} is not allowed (JPEG, PNG or PDF)",
            code="INVALID_FILE_TYPE",
            extra={"field": doc.field},
        )
    if doc.extension not in _EXTENSIONS.get(mime, set()):
        raise ValidationError(
            f"{doc.field}: extension {doc.extension or '<none>'} does not match {mime}",
            code="FILE_EXTENSION_MISMATCH",
            extra={"field": doc.field},
        )
    if doc.size < cfg.min_file_bytes:
        raise ValidationError(
            f"{doc.field}: file is too small ({doc.size} bytes, minimum {cfg.min_file_bytes})",
            code="FILE_TOO_SMALL",
            extra={"field": doc.field},
        )
    if doc.size > cfg.max_file_bytes:
        raise ValidationError(
            f"{doc.field}: file is too large ({doc.size} bytes, maximum {cfg.max_file_bytes})",
            code="FILE_TOO_LARGE",
            extra={"field": doc.field},
        )


def save_documents(cfg: KycUploadConfig, user_id: uuid.UUID, docs: Iterable[UploadedDocument]) -> list[str]:
    """Write files under <upload_dir>/<user_id>/. On partial failure the written ones are removed."""
    target = Path(cfg.upload_dir) / str(user_id)
    target.mkdir(parents=True, exist_ok=True)

    written: list[str] = []
    try:
        for doc in docs:
            path = target / f"{doc.field}-{uuid.uuid4().hex}{doc.extension}"
            path.write_bytes(doc.data)
            written.append(str(path))
    except OSError:
        remove_files(written)
        raise
    return written


def remove_files(paths: Iterable[str]) -> None:
    for p in paths:
        try:
            os.remove(p)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("could not remove kyc file path=%s error=%s", p, e)
