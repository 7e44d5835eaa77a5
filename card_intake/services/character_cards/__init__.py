"""
Character Card Codec
====================

Character metadata embedded in PNG images as base64-encoded tEXt chunks
(SillyTavern `chara` V2 and `ccv3` V3 keywords).
"""

from .metadata_handler import PNGMetadataHandler, MetadataCodecError

__all__ = [
    'PNGMetadataHandler',
    'MetadataCodecError',
]
