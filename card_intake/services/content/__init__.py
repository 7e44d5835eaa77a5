"""
Content Acquisition
===================

Classify import URLs and identifiers, then download character cards and
lorebooks from the matching provider.
"""

from .identifiers import (
    Provider,
    ContentType,
    ChubIdentifier,
    ClassifiedIdentifier,
    classify_identifier,
    parse_aicc,
    parse_chub,
    parse_uuid,
)
from .providers import (
    DownloadFailedError,
    DownloadResult,
    FallbackDocument,
    ProviderDownloader,
)
from .dispatcher import ContentDispatcher, ImportedContent, UnmatchedSourceError

__all__ = [
    'Provider',
    'ContentType',
    'ChubIdentifier',
    'ClassifiedIdentifier',
    'classify_identifier',
    'parse_aicc',
    'parse_chub',
    'parse_uuid',
    'DownloadFailedError',
    'DownloadResult',
    'FallbackDocument',
    'ProviderDownloader',
    'ContentDispatcher',
    'ImportedContent',
    'UnmatchedSourceError',
]
