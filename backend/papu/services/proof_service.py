# Overview: Local filesystem proof store for payment and delivery proofs.

from __future__ import annotations

import logging
import os
import uuid
from contextlib import contextmanager

from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
}

PROOF_KINDS = {"order-payment", "order-delivery", "remittance-payment", "remittance-delivery"}


def _storage_root() -> str:
    return os.path.abspath(current_app.config["PROOF_STORAGE_DIR"])


def store_proof(kind: str, transaction_id: int, filename: str | None, content_type: str | None, data: bytes) -> str:
    """
    Persist an uploaded proof and return its opaque reference.

    The reference is a relative path under PROOF_STORAGE_DIR; transactions
    store only the reference, never the bytes.
    """
    if kind not in PROOF_KINDS:
        raise ValidationError("Unknown proof kind", details={"kind": kind})
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            "Unsupported proof file type",
            details={"content_type": content_type, "allowed": sorted(ALLOWED_CONTENT_TYPES)},
        )
    if not data:
        raise ValidationError("Proof file is empty")
    max_bytes = int(current_app.config.get("PROOF_MAX_BYTES", 5 * 1024 * 1024))
    if len(data) > max_bytes:
        raise ValidationError("Proof file too large", details={"max_bytes": max_bytes, "size": len(data)})

    base = secure_filename(filename or "") or "proof"
    stem, ext = os.path.splitext(base)
    if not ext:
        ext = ALLOWED_CONTENT_TYPES[content_type]
    name = f"{uuid.uuid4().hex}_{stem[:64]}{ext.lower()}"

    relative = f"{kind}/{int(transaction_id)}/{name}"
    target = os.path.join(_storage_root(), *relative.split("/"))
    os.makedirs(os.path.dirname(target), exist_ok=True)
    with open(target, "wb") as fh:
        fh.write(data)
    return relative


def resolve_proof_path(reference: str) -> str:
    root = _storage_root()
    target = os.path.abspath(os.path.join(root, *reference.split("/")))
    if os.path.commonpath([root, target]) != root or not os.path.isfile(target):
        raise NotFoundError("Proof not found", details={"reference": reference})
    return target


def store_upload(kind: str, transaction_id: int, file_storage) -> str:
    """Store a werkzeug FileStorage from a multipart request."""
    if file_storage is None:
        raise ValidationError("file is required")
    data = file_storage.read()
    return store_proof(kind, transaction_id, file_storage.filename, file_storage.mimetype, data)


def discard_proof(reference: str) -> bool:
    """Delete a stored proof. Returns False when it was already gone."""
    try:
        path = resolve_proof_path(reference)
    except NotFoundError:
        return False
    try:
        os.remove(path)
    except OSError:
        logger.warning("Could not delete proof %s", reference, exc_info=True)
        return False
    return True


@contextmanager
def discard_on_error(reference: str | None):
    """Remove a just-stored upload if the operation it belongs to fails."""
    try:
        yield reference
    except Exception:
        if reference:
            discard_proof(reference)
        raise
