"""
PNG Metadata Handler
===================

Handles reading and writing tEXt chunks in PNG images for character card metadata.
"""

import base64
import json
import logging
from typing import Optional
from io import BytesIO
from PIL import Image, PngImagePlugin, UnidentifiedImageError

logger = logging.getLogger(__name__)

V2_KEYWORD = "chara"
V3_KEYWORD = "ccv3"


class MetadataCodecError(Exception):
    """Embedding or extracting card metadata failed."""
    pass


class PNGMetadataHandler:
    """Handle PNG tEXt chunk operations for character card metadata."""
    
    @staticmethod
    def read_text_chunk(png_data: bytes, keyword: str) -> Optional[str]:
        """
        Extract tEXt chunk with specific keyword from PNG data.
        
        Args:
            png_data: PNG file data as bytes
            keyword: tEXt chunk keyword to search for (e.g., 'chara', 'ccv3')
            
        Returns:
            Decoded text data if found, None otherwise
            
        Raises:
            MetadataCodecError: If the data is not a readable image
        """
        try:
            image = Image.open(BytesIO(png_data))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise MetadataCodecError(f"Cannot read PNG: {e}")
        
        text = getattr(image, 'text', None)
        if not isinstance(text, dict):
            logger.debug("No text metadata found in PNG")
            return None
        
        for key, value in text.items():
            if key.lower() == keyword.lower():
                logger.debug(f"Found tEXt chunk with keyword '{key}'")
                # Character cards store base64-encoded JSON in the chunk
                try:
                    return base64.b64decode(value).decode('utf-8')
                except ValueError as e:
                    raise MetadataCodecError(f"Chunk '{key}' is not valid base64 UTF-8: {e}")
        
        logger.debug(f"tEXt chunk with keyword '{keyword}' not found")
        return None
    
    @staticmethod
    def read_card(png_data: bytes) -> str:
        """
        Extract the character metadata document from a card.
        
        The V3 chunk wins over the V2 chunk when both are present.
        
        Raises:
            MetadataCodecError: If the PNG is unreadable or carries no card data
        """
        for keyword in (V3_KEYWORD, V2_KEYWORD):
            data = PNGMetadataHandler.read_text_chunk(png_data, keyword)
            if data is not None:
                return data
        raise MetadataCodecError("No character card metadata found in PNG")
    
    @staticmethod
    def write_card(png_data: bytes, metadata: str) -> bytes:
        """
        Embed character metadata into PNG image data.
        
        Any existing card chunks are replaced. The V2 `chara` chunk always
        carries the metadata verbatim; a V3 `ccv3` chunk is added when the
        metadata is a JSON object.
        
        Args:
            png_data: Image data (any format Pillow can decode)
            metadata: Metadata document, usually JSON text
            
        Returns:
            PNG data with embedded metadata
            
        Raises:
            MetadataCodecError: If the image cannot be decoded or encoded
        """
        try:
            image = Image.open(BytesIO(png_data))
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise MetadataCodecError(f"Cannot embed metadata, image unreadable: {e}")
        
        png_info = PngImagePlugin.PngInfo()
        
        # Preserve unrelated text chunks
        text = getattr(image, 'text', None)
        if isinstance(text, dict):
            for key, value in text.items():
                if key.lower() not in (V2_KEYWORD, V3_KEYWORD):
                    png_info.add_text(key, value)
        
        png_info.add_text(V2_KEYWORD, _encode(metadata))
        
        v3_metadata = _as_v3(metadata)
        if v3_metadata is not None:
            png_info.add_text(V3_KEYWORD, _encode(v3_metadata))
        
        if image.mode not in ("1", "L", "LA", "I", "P", "RGB", "RGBA"):
            image = image.convert("RGBA")
        
        try:
            output = BytesIO()
            image.save(output, format='PNG', pnginfo=png_info)
            return output.getvalue()
        except (OSError, ValueError) as e:
            logger.error(f"Error writing PNG metadata: {e}")
            raise MetadataCodecError(f"Failed to encode card PNG: {e}")


def _encode(data: str) -> str:
    return base64.b64encode(data.encode('utf-8')).decode('ascii')


def _as_v3(metadata: str) -> Optional[str]:
    """Return the metadata restamped as a V3 card, or None if it is not a JSON object."""
    try:
        card = json.loads(metadata)
    except ValueError:
        return None
    if not isinstance(card, dict):
        return None
    card['spec'] = 'chara_card_v3'
    card['spec_version'] = '3.0'
    return json.dumps(card, ensure_ascii=False)
