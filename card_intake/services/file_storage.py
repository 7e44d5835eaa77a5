"""
File storage primitives for character assets.

Atomic overwrite of files on disk and invalidation of cached thumbnails.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class PersistError(Exception):
    """Writing a file to disk failed; the previous contents are intact."""
    pass


def atomic_write(path: Path, data: bytes) -> None:
    """
    Replace a file's contents so readers see either the old or new bytes.

    Writes to a temporary file in the same directory, fsyncs it and renames
    it over the destination. The destination's permission bits are kept.

    Raises:
        PersistError: The write or rename failed
    """
    path = Path(path)
    temp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as temp_file:
            temp_name = temp_file.name
            temp_file.write(data)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        if path.exists():
            shutil.copymode(path, temp_name)
        os.replace(temp_name, path)
        temp_name = None
        logger.debug(f"Atomically wrote {len(data)} bytes to {path}")
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise PersistError(f"Failed to write {path}: {e}") from e
    finally:
        if temp_name is not None:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass


class ThumbnailCache:
    """
    On-disk thumbnail cache, laid out as <root>/<kind>/<relative path>.
    """

    def __init__(self, base_path: Path = Path("data/thumbnails")):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def get_thumbnail_path(self, kind: str, relative_path: str) -> Path:
        return self.base_path / kind / relative_path

    def invalidate(self, kind: str, relative_path: str) -> bool:
        """
        Drop a cached thumbnail so it is regenerated on next request.

        Failures are logged, not raised.

        Returns:
            True if a thumbnail was removed
        """
        thumbnail = self.get_thumbnail_path(kind, relative_path)
        try:
            thumbnail.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not invalidate thumbnail {thumbnail}: {e}")
            return False

        logger.debug(f"Invalidated thumbnail: {thumbnail}")
        return True
