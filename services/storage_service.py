import re
import uuid
from pathlib import Path
from typing import Optional

from core.config import settings
from core.exceptions import ValidationError
from core.logger import logger

_REF_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class BlobStorage:
    """Stores uploaded question images in a local directory served under /uploads."""

    def __init__(self, root_dir: str = None, base_url: str = None):
        self.root = Path(root_dir or settings.UPLOAD_DIR)
        self.base_url = (settings.PUBLIC_BASE_URL if base_url is None else base_url).rstrip("/")
        self.max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    def _path(self, blob_ref: str) -> Path:
        if not blob_ref or not _REF_PATTERN.match(blob_ref):
            raise ValidationError(f"Invalid blob reference: {blob_ref!r}")
        return self.root / blob_ref

    def put_blob(self, data: bytes) -> str:
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > self.max_bytes:
            raise ValidationError(f"Uploaded file exceeds {settings.MAX_UPLOAD_SIZE_MB} MB")
        self.root.mkdir(parents=True, exist_ok=True)
        blob_ref = uuid.uuid4().hex
        self._path(blob_ref).write_bytes(data)
        logger.info("Blob stored", blob_ref=blob_ref, size=len(data))
        return blob_ref

    def get_url(self, blob_ref: str) -> Optional[str]:
        try:
            path = self._path(blob_ref)
        except ValidationError:
            return None
        if not path.exists():
            return None
        return f"{self.base_url}/uploads/{blob_ref}"

    def delete_blob(self, blob_ref: str):
        self._path(blob_ref).unlink(missing_ok=True)
        logger.info("Blob deleted", blob_ref=blob_ref)
