"""
Provider identifier parsing.

Pure functions that pull a provider-specific identifier out of a URL, plus
the classifier for pre-extracted opaque identifiers used by re-downloads.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlsplit


class Provider(str, Enum):
    """External content sources."""
    CHUB = "chub"
    JANNY = "janny"
    PYGMALION = "pygmalion"
    AICC = "aicc"
    RISU = "risu"
    GENERIC = "generic"


class ContentType(str, Enum):
    """Asset kind reported to the client."""
    CHARACTER = "character"
    LOREBOOK = "lorebook"


@dataclass(frozen=True)
class ChubIdentifier:
    id: str
    type: ContentType


@dataclass(frozen=True)
class ClassifiedIdentifier:
    """An opaque identifier resolved to the provider that should serve it."""
    provider: Provider
    identifier: str
    type: ContentType = ContentType.CHARACTER


UUID_PATTERN = re.compile(
    r'[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}',
    re.IGNORECASE,
)

AICC_PATTERN = re.compile(
    r'^https?://aicharactercards\.com/character-cards/([^/]+)/([^/]+)/?$|([^/]+/[^/]+)$'
)

CHUB_DOMAINS = ("chub.ai", "characterhub.org")


def _is_chub_domain(segment: str) -> bool:
    segment = segment.lower()
    return any(segment == domain or segment.endswith(f".{domain}") for domain in CHUB_DOMAINS)


def parse_uuid(value: str) -> Optional[str]:
    """Return the first UUID-shaped token anywhere in the string."""
    match = UUID_PATTERN.search(value)
    return match.group(0) if match else None


def parse_aicc(value: str) -> Optional[str]:
    """
    Return "<author>/<card>" from an aicharactercards.com URL or a relative path.

    >>> parse_aicc("https://aicharactercards.com/character-cards/anime/mira")
    'anime/mira'
    """
    match = AICC_PATTERN.search(value)
    if not match:
        return None
    if match.group(3):
        return match.group(3)
    return f"{match.group(1)}/{match.group(2)}"


def parse_chub(value: str) -> Optional[ChubIdentifier]:
    """
    Parse a Chub / CharacterHub URL (or bare "author/card" path).

    Everything after the domain segment is the path. A leading
    `characters` segment marks a character, `lorebooks` a lorebook; the
    marker segment itself is not part of the id.
    """
    parts = value.split('?')[0].split('#')[0].split('/')
    if len(parts) < 2:
        return None

    domain_index = -1
    for index, part in enumerate(parts):
        if _is_chub_domain(part):
            domain_index = index

    path = parts[domain_index + 1:] if domain_index != -1 else parts
    path = [part for part in path if part]
    if not path:
        return None

    first = path[0].lower()
    if first == "characters" and len(path) > 1:
        return ChubIdentifier(id='/'.join(path[1:]), type=ContentType.CHARACTER)
    if first == "lorebooks" and len(path) > 1:
        return ChubIdentifier(id='/'.join(path[1:]), type=ContentType.LOREBOOK)
    if len(parts) == 2 and domain_index == -1:
        return ChubIdentifier(id='/'.join(parts), type=ContentType.CHARACTER)
    return None


def url_hosts(url: str) -> tuple[str, ...]:
    """
    Host forms used for whitelist lookups: bare host and host:port.

    Returns an empty tuple for strings that are not absolute URLs.
    """
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
        port = parts.port
    except ValueError:
        return ()
    if not parts.scheme or not host:
        return ()
    host = host.lower()
    if port is not None:
        return (host, f"{host}:{port}")
    return (host,)


def is_host_whitelisted(url: str, whitelist: Iterable[str]) -> bool:
    """True if the URL's host (with or without port) is whitelisted."""
    allowed = set(whitelist)
    return any(host in allowed for host in url_hosts(url))


def classify_identifier(identifier: str) -> ClassifiedIdentifier:
    """
    Resolve an opaque identifier to a provider.

    Order matters, the checks overlap:
      1. contains "_character"          -> Janny (id is the part before "_")
      2. 36 characters and UUID-shaped  -> Pygmalion
      3. starts with "AICC/"            -> AICC
      4. anything else                  -> Chub (lorebook if "lorebook" appears)
    """
    if "_character" in identifier:
        return ClassifiedIdentifier(Provider.JANNY, identifier.split('_')[0])

    if len(identifier) == 36 and UUID_PATTERN.fullmatch(identifier):
        return ClassifiedIdentifier(Provider.PYGMALION, identifier)

    if identifier.startswith("AICC/"):
        return ClassifiedIdentifier(Provider.AICC, parse_aicc(identifier) or identifier[len("AICC/"):])

    if "lorebook" in identifier:
        return ClassifiedIdentifier(Provider.CHUB, identifier, ContentType.LOREBOOK)
    return ClassifiedIdentifier(Provider.CHUB, identifier, ContentType.CHARACTER)
