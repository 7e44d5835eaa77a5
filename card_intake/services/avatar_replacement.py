"""
Avatar replacement workflow.

Swaps the image of an existing character card while keeping its metadata:
invalidate the cached thumbnail, pick up the card metadata, run the new
image through the transform pipeline, re-embed the metadata and atomically
overwrite the card on disk.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

from card_intake.services.character_cards import PNGMetadataHandler, MetadataCodecError
from card_intake.services.file_storage import PersistError, ThumbnailCache, atomic_write
from card_intake.services.image_transform import (
    CropSpec,
    ImageDecodeError,
    ImageInput,
    transform_image,
)

logger = logging.getLogger(__name__)

THUMBNAIL_KIND = "avatar"


class AvatarPathError(Exception):
    """The avatar path is outside the characters directory or does not exist."""
    pass


class AvatarReplacementService:
    """Overwrite existing character avatars in place."""

    def __init__(
        self,
        characters_dir: Path,
        thumbnails: ThumbnailCache,
        avatar_size: Tuple[int, int] = (512, 768),
    ):
        """
        Initialize avatar replacement.

        Args:
            characters_dir: Root directory holding character card PNGs
            thumbnails: Thumbnail cache to invalidate on replacement
            avatar_size: (width, height) for crops that request a resize
        """
        self.characters_dir = Path(characters_dir)
        self.thumbnails = thumbnails
        self.avatar_size = avatar_size

    def resolve_avatar_path(self, avatar_name: str) -> Path:
        """
        Resolve an avatar file name under the characters directory.

        Raises:
            AvatarPathError: Path escapes the directory or the file is missing
        """
        root = self.characters_dir.resolve()
        candidate = (root / avatar_name).resolve()

        if candidate == root or not candidate.is_relative_to(root):
            raise AvatarPathError(f"Avatar path escapes characters directory: {avatar_name}")
        if not candidate.is_file():
            raise AvatarPathError(f"Avatar not found: {avatar_name}")
        return candidate

    async def replace_avatar(
        self,
        avatar_name: str,
        image: ImageInput,
        metadata: Optional[str] = None,
        crop: Optional[CropSpec] = None,
        temp_upload: Optional[Path] = None,
    ) -> bool:
        """
        Replace a character's avatar image, keeping its card metadata.

        Args:
            avatar_name: Avatar file name relative to the characters directory
            image: New image as bytes or a file path
            metadata: Card metadata to embed; read from the existing card if None
            crop: Optional crop applied before resizing
            temp_upload: Temporary upload file to delete once done

        Returns:
            True on success. On failure the existing card is left untouched.
        """
        try:
            avatar_path = self.resolve_avatar_path(avatar_name)
            relative = avatar_path.relative_to(self.characters_dir.resolve()).as_posix()
            self.thumbnails.invalidate(THUMBNAIL_KIND, relative)

            if metadata is None:
                existing = await asyncio.to_thread(avatar_path.read_bytes)
                metadata = await asyncio.to_thread(PNGMetadataHandler.read_card, existing)

            image_data = await transform_image(image, crop, self.avatar_size)
            card = await asyncio.to_thread(PNGMetadataHandler.write_card, image_data, metadata)
            await asyncio.to_thread(atomic_write, avatar_path, card)

            logger.info(f"Replaced avatar {avatar_name} ({len(card)} bytes)")
            return True

        except (AvatarPathError, ImageDecodeError, MetadataCodecError, PersistError) as e:
            logger.error(f"Avatar replacement for {avatar_name} failed: {e}")
            return False

        except Exception as e:
            logger.error(f"Avatar replacement for {avatar_name} failed: {e}", exc_info=True)
            return False

        finally:
            if temp_upload is not None:
                self._discard_upload(temp_upload)

    @staticmethod
    def _discard_upload(temp_upload: Path) -> None:
        try:
            Path(temp_upload).unlink()
            logger.debug(f"Removed temporary upload: {temp_upload}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary upload {temp_upload}: {e}")
