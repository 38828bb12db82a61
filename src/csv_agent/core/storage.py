"""On-disk storage for uploaded CSV files."""
import logging
import os
import uuid
from pathlib import Path
from typing import Union

from .exceptions import ResourceValidationError

logger = logging.getLogger(__name__)


class DiskStorage:
    """Stores uploaded files under ``<root>/<session_id>/<uuid><ext>``.

    Paths handed out are relative to the root so records survive a moved
    uploads directory. A fresh uuid is used for every file, so stored paths
    are never reused.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def resolve(self, stored_path: Union[str, Path]) -> Path:
        """Return the absolute path for a stored path.

        Raises:
            ResourceValidationError: If the path points outside the storage root
        """
        root = self.root.resolve()
        path = (root / stored_path).resolve()
        if root not in path.parents:
            raise ResourceValidationError(f"Stored path is outside the uploads directory: {stored_path}")
        return path

    def put(self, session_id: str, original_name: str, data: bytes) -> str:
        """Write ``data`` for a session and return its stored (relative) path."""
        ext = Path(original_name).suffix.lower() or ".csv"
        relative = Path(session_id) / f"{uuid.uuid4()}{ext}"
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug(f"Stored {len(data)} bytes at {target}")
        return relative.as_posix()

    def delete(self, stored_path: Union[str, Path]) -> bool:
        """Remove a stored file. Returns False if it did not exist."""
        target = self.resolve(stored_path)
        try:
            os.remove(target)
            return True
        except FileNotFoundError:
            logger.warning(f"Stored file already missing: {target}")
            return False

    def exists(self, stored_path: Union[str, Path]) -> bool:
        return self.resolve(stored_path).is_file()
