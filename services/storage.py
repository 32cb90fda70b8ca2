"""
Storage Service

Local object storage for RFP documents. Bytes are only handed out after
the document access evaluator allows the request, so the object layer
enforces the same policy as the metadata layer.

Storage structure:
- data/documents/{rfp_id}/{uuid}_{filename}
"""

import re
import uuid
from pathlib import Path
from typing import Optional

from config.settings import settings
from database.models import RFP, Document
from schemas.access import AccessContext, AccessDecision
from schemas.identity import Identity
from services.access import can_access_document


class StorageError(Exception):
    """Stored object is missing or the key is invalid."""
    pass


def _safe_name(filename: str) -> str:
    name = Path(filename).name
    return re.sub(r"[^A-Za-z0-9._-]", "_", name) or "document"


class StorageService:
    """Manages document files under the data directory."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or settings.documents_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, rfp_id: uuid.UUID, filename: str, content: bytes) -> str:
        """Store bytes and return the storage key (relative path)."""
        rfp_dir = self.root / str(rfp_id)
        rfp_dir.mkdir(parents=True, exist_ok=True)

        key = f"{rfp_id}/{uuid.uuid4().hex}_{_safe_name(filename)}"
        (self.root / key).write_bytes(content)
        return key

    def path_for(self, key: str) -> Path:
        """Resolve a storage key, refusing anything outside the root."""
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Invalid storage key: {key}")
        if not path.is_file():
            raise StorageError(f"Stored file not found: {key}")
        return path

    def delete(self, key: str) -> bool:
        try:
            self.path_for(key).unlink()
            return True
        except StorageError:
            return False

    def fetch(
        self,
        identity: Identity,
        document: Document,
        rfp: RFP,
        context: AccessContext
    ) -> tuple[AccessDecision, Optional[Path]]:
        """Evaluate access and, only when allowed, resolve the file."""
        decision = can_access_document(identity, document, rfp, context)
        if not decision.allowed:
            return decision, None
        return decision, self.path_for(document.file_path)


# Global storage instance
_storage: Optional[StorageService] = None


def get_storage() -> StorageService:
    """Get the storage service instance."""
    global _storage
    if _storage is None:
        _storage = StorageService()
    return _storage


def configure_storage(storage: Optional[StorageService]) -> None:
    global _storage
    _storage = storage
