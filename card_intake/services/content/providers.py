"""
Provider downloaders.

One coroutine per external content provider. Each performs the provider's
fetch sequence and normalizes the outcome into a DownloadResult. Any
non-success response or transport error becomes a DownloadFailedError,
except where a provider defines a fallback (Pygmalion).
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from card_intake.services.character_cards import PNGMetadataHandler, MetadataCodecError
from card_intake.utils.filenames import sanitize_filename
from .identifiers import Provider

logger = logging.getLogger(__name__)

CHUB_CHARACTER_URL = "https://api.chub.ai/api/characters/download"
CHUB_LOREBOOK_URL = "https://api.chub.ai/api/lorebooks/download"
JANNY_DOWNLOAD_URL = "https://api.janitorai.me/api/v1/download"
PYGMALION_EXPORT_URL = "https://server.pygmalion.chat/api/export/character/{uuid}/v2"
AICC_IMAGE_URL = "https://aicharactercards.com/wp-json/pngapi/v1/image/{id}"
RISU_DOWNLOAD_URL = "https://realm.risuai.net/api/v1/download/png-v3/{uuid}"


class DownloadFailedError(Exception):
    """A provider returned a non-success response or could not be reached."""

    def __init__(self, provider: Provider, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        self.message = message
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{provider.value} download failed{status}: {message}")


@dataclass
class DownloadResult:
    """Normalized asset fetched from a provider."""
    buffer: bytes
    file_name: str
    file_type: Optional[str]

    @property
    def degraded(self) -> bool:
        return False


@dataclass
class FallbackDocument(DownloadResult):
    """Substitute asset returned when a provider's preferred format failed."""
    reason: str = ""

    @property
    def degraded(self) -> bool:
        return True


def _filename_from_disposition(header: Optional[str]) -> Optional[str]:
    if not header or "filename=" not in header:
        return None
    name = header.split("filename=", 1)[1].split(";", 1)[0].strip().strip('"')
    return name or None


class ProviderDownloader:
    """
    HTTP client for the supported content providers.

    Handles:
    - Chub characters and lorebooks
    - JanitorAI characters
    - Pygmalion exports (with JSON fallback)
    - AICharacterCards and RisuAI realm cards
    - Generic downloads from whitelisted hosts
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize downloader.

        Args:
            timeout: Per-request timeout in seconds
            user_agent: Optional User-Agent header sent with every request
            client: Pre-built client (tests inject one with a mock transport)
        """
        headers = {"User-Agent": user_agent} if user_agent else None
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers=headers,
        )
        logger.info(f"Provider downloader initialized (timeout: {timeout}s)")

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        provider: Provider,
        method: str,
        url: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Send one request, raising DownloadFailedError on anything but 2xx."""
        try:
            response = await self.client.request(method, url, json=json_body, params=params)
        except (httpx.HTTPError, httpx.InvalidURL, TypeError) as e:
            logger.error(f"{provider.value} request to {url!r} failed: {e}")
            raise DownloadFailedError(provider, str(e)) from e

        if not response.is_success:
            logger.error(
                f"{provider.value} returned error: {response.status_code} "
                f"{response.reason_phrase} - {response.text[:500]}"
            )
            raise DownloadFailedError(provider, response.reason_phrase, response.status_code)

        return response

    async def download_chub_character(self, identifier: str) -> DownloadResult:
        """Download a Chub character card as a Tavern PNG."""
        response = await self._request(
            Provider.CHUB,
            "POST",
            CHUB_CHARACTER_URL,
            json_body={"format": "tavern", "fullPath": identifier},
        )
        file_name = (
            _filename_from_disposition(response.headers.get("content-disposition"))
            or f"{sanitize_filename(identifier)}.png"
        )
        return DownloadResult(
            buffer=response.content,
            file_name=file_name,
            file_type=response.headers.get("content-type"),
        )

    async def download_chub_lorebook(self, identifier: str) -> DownloadResult:
        """Download a Chub lorebook in SillyTavern world-info format."""
        full_path = identifier if identifier.startswith("lorebooks/") else f"lorebooks/{identifier}"
        response = await self._request(
            Provider.CHUB,
            "POST",
            CHUB_LOREBOOK_URL,
            json_body={"fullPath": full_path, "format": "SILLYTAVERN"},
        )
        name = identifier.rstrip('/').split('/')[-1]
        return DownloadResult(
            buffer=response.content,
            file_name=f"{sanitize_filename(name)}.json",
            file_type=response.headers.get("content-type"),
        )

    async def download_janny_character(self, uuid: str) -> DownloadResult:
        """
        Resolve a JanitorAI download link, then fetch the card it points at.

        JanitorAI rejects many data-center IP ranges; those rejections
        surface as DownloadFailedError like any other error response.
        """
        response = await self._request(
            Provider.JANNY,
            "POST",
            JANNY_DOWNLOAD_URL,
            json_body={"characterId": uuid},
        )
        try:
            payload = response.json()
        except ValueError:
            raise DownloadFailedError(Provider.JANNY, "download resolution was not JSON", response.status_code)

        if not isinstance(payload, dict) or payload.get("status") != "ok" or not payload.get("downloadUrl"):
            logger.error(f"janny returned error payload: {str(payload)[:500]}")
            raise DownloadFailedError(Provider.JANNY, "download resolution failed", response.status_code)

        image = await self._request(Provider.JANNY, "GET", payload["downloadUrl"])
        return DownloadResult(
            buffer=image.content,
            file_name=f"{sanitize_filename(uuid)}.png",
            file_type=image.headers.get("content-type"),
        )

    async def download_pygmalion_character(self, uuid: str) -> DownloadResult:
        """
        Download a Pygmalion character export and bake it into its avatar.

        If the avatar cannot be fetched or the card cannot be written, the
        exported document itself is returned as a FallbackDocument.
        """
        response = await self._request(Provider.PYGMALION, "GET", PYGMALION_EXPORT_URL.format(uuid=uuid))
        try:
            document = response.json()
        except ValueError:
            raise DownloadFailedError(Provider.PYGMALION, "export was not JSON", response.status_code)

        character = document.get("character") if isinstance(document, dict) else None
        if not isinstance(character, dict):
            raise DownloadFailedError(Provider.PYGMALION, "returned invalid character data", response.status_code)

        try:
            data = character.get("data")
            avatar_url = data.get("avatar") if isinstance(data, dict) else None
            if not avatar_url or not isinstance(avatar_url, str):
                raise DownloadFailedError(Provider.PYGMALION, "export has no usable avatar URL")

            avatar = await self._request(Provider.PYGMALION, "GET", avatar_url)
            card = await asyncio.to_thread(
                PNGMetadataHandler.write_card,
                avatar.content,
                json.dumps(character, ensure_ascii=False),
            )
            return DownloadResult(
                buffer=card,
                file_name=f"{sanitize_filename(uuid)}.png",
                file_type="image/png",
            )
        except (DownloadFailedError, MetadataCodecError) as e:
            logger.warning(f"Failed to build Pygmalion card for {uuid}, returning JSON instead: {e}")
            return FallbackDocument(
                buffer=json.dumps(document, ensure_ascii=False).encode('utf-8'),
                file_name=f"{sanitize_filename(uuid)}.json",
                file_type="application/json",
                reason=str(e),
            )

    async def download_aicc_character(self, identifier: str) -> DownloadResult:
        """Download an AICharacterCards PNG by "<author>/<card>"."""
        response = await self._request(
            Provider.AICC,
            "GET",
            AICC_IMAGE_URL.format(id=quote(identifier, safe='/')),
        )
        return DownloadResult(
            buffer=response.content,
            file_name=f"{sanitize_filename(identifier)}.png",
            file_type=response.headers.get("content-type") or "image/png",
        )

    async def download_risu_character(self, uuid: str) -> DownloadResult:
        """Download a RisuAI realm card (V3 PNG)."""
        response = await self._request(
            Provider.RISU,
            "GET",
            RISU_DOWNLOAD_URL.format(uuid=uuid),
            params={"non_commercial": "true"},
        )
        return DownloadResult(
            buffer=response.content,
            file_name=f"{sanitize_filename(uuid)}.png",
            file_type="image/png",
        )

    async def download_generic(self, url: str) -> DownloadResult:
        """Download a file from a whitelisted host, named after the final URL."""
        response = await self._request(Provider.GENERIC, "GET", url)
        final_name = str(response.url).split("?")[0].split("#")[0].split("/")[-1]
        return DownloadResult(
            buffer=response.content,
            file_name=sanitize_filename(final_name) or "download.png",
            file_type=response.headers.get("content-type") or "image/png",
        )
