"""
Content-acquisition dispatcher.

Routes an import URL or an opaque identifier to exactly one provider
downloader. URL routing walks a fixed, ordered table of (host matcher,
identifier parser) pairs and takes the first hit; hosts that match no
provider and are not whitelisted never reach the network.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional
from urllib.parse import urlsplit

from .identifiers import (
    ClassifiedIdentifier,
    ContentType,
    Provider,
    classify_identifier,
    is_host_whitelisted,
    parse_aicc,
    parse_chub,
    parse_uuid,
)
from .providers import DownloadResult, ProviderDownloader

logger = logging.getLogger(__name__)


class UnmatchedSourceError(Exception):
    """No provider or whitelisted host matches the requested source."""
    pass


@dataclass(frozen=True)
class ImportedContent:
    """A downloaded asset plus what it is and where it came from."""
    provider: Provider
    type: ContentType
    result: DownloadResult


@dataclass(frozen=True)
class ProviderRoute:
    provider: Provider
    matches: Callable[[str], bool]
    parse: Callable[[str], Optional[ClassifiedIdentifier]]


def _host_of(url: str) -> str:
    value = url.strip()
    try:
        parts = urlsplit(value if "://" in value else f"//{value}")
        return (parts.hostname or "").lower()
    except ValueError:
        return ""


def _host_contains(*needles: str) -> Callable[[str], bool]:
    def matches(url: str) -> bool:
        host = _host_of(url)
        return any(needle in host for needle in needles)
    return matches


def _uuid_parser(provider: Provider) -> Callable[[str], Optional[ClassifiedIdentifier]]:
    def parse(url: str) -> Optional[ClassifiedIdentifier]:
        uuid = parse_uuid(url)
        return ClassifiedIdentifier(provider, uuid) if uuid else None
    return parse


def _parse_aicc_url(url: str) -> Optional[ClassifiedIdentifier]:
    identifier = parse_aicc(url)
    return ClassifiedIdentifier(Provider.AICC, identifier) if identifier else None


def _parse_chub_url(url: str) -> Optional[ClassifiedIdentifier]:
    parsed = parse_chub(url)
    if parsed is None:
        return None
    return ClassifiedIdentifier(Provider.CHUB, parsed.id, parsed.type)


class ContentDispatcher:
    """Select a provider for an import request and run its downloader."""

    def __init__(self, downloader: ProviderDownloader, whitelist: Iterable[str]):
        """
        Args:
            downloader: Provider HTTP client
            whitelist: Hosts allowed for generic downloads (frozen on construction)
        """
        self.downloader = downloader
        self.whitelist = frozenset(host.lower() for host in whitelist)
        self.routes = (
            ProviderRoute(Provider.PYGMALION, _host_contains("pygmalion.chat"), _uuid_parser(Provider.PYGMALION)),
            ProviderRoute(Provider.JANNY, _host_contains("janitorai"), _uuid_parser(Provider.JANNY)),
            ProviderRoute(Provider.AICC, _host_contains("aicharactercards.com"), _parse_aicc_url),
            ProviderRoute(Provider.CHUB, _host_contains("chub.ai", "characterhub.org"), _parse_chub_url),
            ProviderRoute(Provider.RISU, _host_contains("realm.risuai.net"), _uuid_parser(Provider.RISU)),
            ProviderRoute(Provider.GENERIC, self._is_whitelisted, self._parse_generic),
        )
        logger.info(f"Content dispatcher ready ({len(self.whitelist)} whitelisted host(s))")

    def _is_whitelisted(self, url: str) -> bool:
        return is_host_whitelisted(url, self.whitelist)

    @staticmethod
    def _parse_generic(url: str) -> Optional[ClassifiedIdentifier]:
        return ClassifiedIdentifier(Provider.GENERIC, url)

    def resolve_url(self, url: str) -> ClassifiedIdentifier:
        """
        Pick the provider for a URL without touching the network.

        Raises:
            UnmatchedSourceError: No route matched
        """
        for route in self.routes:
            if not route.matches(url):
                continue
            identifier = route.parse(url)
            if identifier is not None:
                logger.debug(f"Routed {url} to {route.provider.value}: {identifier.identifier}")
                return identifier

        raise UnmatchedSourceError(f"No provider or whitelisted host matches {url}")

    async def fetch(self, target: ClassifiedIdentifier) -> ImportedContent:
        """Run the downloader for an already-classified identifier."""
        downloader = self.downloader
        identifier = target.identifier

        if target.provider == Provider.PYGMALION:
            result = await downloader.download_pygmalion_character(identifier)
        elif target.provider == Provider.JANNY:
            result = await downloader.download_janny_character(identifier)
        elif target.provider == Provider.AICC:
            result = await downloader.download_aicc_character(identifier)
        elif target.provider == Provider.CHUB and target.type == ContentType.LOREBOOK:
            result = await downloader.download_chub_lorebook(identifier)
        elif target.provider == Provider.CHUB:
            result = await downloader.download_chub_character(identifier)
        elif target.provider == Provider.RISU:
            result = await downloader.download_risu_character(identifier)
        else:
            result = await downloader.download_generic(identifier)

        if result.degraded:
            logger.warning(f"{target.provider.value} import of {identifier} returned a fallback document")
        logger.info(f"Downloaded {target.type.value} from {target.provider.value}: {result.file_name}")
        return ImportedContent(provider=target.provider, type=target.type, result=result)

    async def dispatch_url(self, url: str) -> ImportedContent:
        """
        Download whatever an import URL points at.

        Raises:
            UnmatchedSourceError: Host matches no provider and is not whitelisted
            DownloadFailedError: The selected provider failed
        """
        return await self.fetch(self.resolve_url(url))

    async def dispatch_identifier(self, identifier: str) -> ImportedContent:
        """
        Re-download by opaque identifier (see classify_identifier for precedence).

        Raises:
            UnmatchedSourceError: Identifier is empty
            DownloadFailedError: The selected provider failed
        """
        identifier = identifier.strip()
        if not identifier:
            raise UnmatchedSourceError("Empty identifier")
        return await self.fetch(classify_identifier(identifier))
