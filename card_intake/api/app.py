"""FastAPI application and routes."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Query, UploadFile, File, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from card_intake.config import ConfigLoader, SystemConfig
from card_intake.services.avatar_replacement import AvatarReplacementService
from card_intake.services.content import (
    ContentDispatcher,
    DownloadFailedError,
    ImportedContent,
    ProviderDownloader,
    UnmatchedSourceError,
)
from card_intake.services.file_storage import ThumbnailCache
from card_intake.services.image_transform import parse_crop

logger = logging.getLogger(__name__)


# Global state
app_state = {
    "system_config": None,
    "downloader": None,
    "dispatcher": None,
    "avatar_service": None,
}


def build_services(system_config: SystemConfig, downloader: Optional[ProviderDownloader] = None) -> None:
    """Create the request-independent services and store them in app_state."""
    if downloader is None:
        downloader = ProviderDownloader(
            timeout=system_config.content.request_timeout_seconds,
            user_agent=system_config.content.user_agent,
        )

    app_state["system_config"] = system_config
    app_state["downloader"] = downloader
    app_state["dispatcher"] = ContentDispatcher(
        downloader,
        system_config.content.whitelist_import_domains,
    )
    app_state["avatar_service"] = AvatarReplacementService(
        characters_dir=system_config.paths.characters,
        thumbnails=ThumbnailCache(system_config.paths.thumbnails),
        avatar_size=(system_config.avatar.width, system_config.avatar.height),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting Card Intake...")

    try:
        loader = ConfigLoader()
        system_config = loader.load_system_config()
        build_services(system_config)
        logger.info(
            f"✓ Services initialized (characters: {system_config.paths.characters}, "
            f"whitelist: {', '.join(system_config.content.whitelist_import_domains) or 'none'})"
        )
    except Exception as e:
        logger.error(f"Failed to start Card Intake: {e}")
        raise

    yield

    logger.info("Shutting down Card Intake...")
    if app_state["downloader"]:
        await app_state["downloader"].close()


app = FastAPI(
    title="Card Intake",
    description="Character card import and avatar editing",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ImportRequest(BaseModel):
    """Body of the import endpoints. `url` holds a URL or an opaque identifier."""
    url: Optional[Any] = None


def _requested_url(request: Optional[ImportRequest]) -> Optional[str]:
    """Return the requested URL or identifier, or None if absent or not a non-empty string."""
    if request is None or not isinstance(request.url, str) or not request.url.strip():
        return None
    return request.url


def _content_response(content: ImportedContent) -> Response:
    result = content.result
    headers = {
        "Content-Disposition": f'attachment; filename="{quote(result.file_name, safe="")}"',
        "X-Custom-Content-Type": content.type.value,
    }
    return Response(content=result.buffer, media_type=result.file_type, headers=headers)


async def _save_upload(upload: UploadFile, uploads_dir: Path) -> Path:
    """Store an uploaded file under a random name in the uploads directory."""
    temp_path = Path(uploads_dir) / uuid.uuid4().hex
    data = await upload.read()
    await asyncio.to_thread(temp_path.write_bytes, data)
    return temp_path


# Routes

@app.post("/probe", status_code=204)
async def liveness():
    """Liveness check."""
    return Response(status_code=204)


@app.post("/edit-avatar")
async def edit_avatar(
    avatar: Optional[UploadFile] = File(None),
    avatar_url: Optional[str] = Form(None),
    char: Optional[str] = Form(None),
    crop: Optional[str] = Query(None),
):
    """
    Replace a character's avatar with an uploaded image.

    `avatar_url` names the existing card file; `char` optionally supplies
    the card metadata (otherwise the existing card's metadata is kept).
    `crop` is a JSON object {x, y, width, height, want_resize}.
    """
    if avatar is None or not avatar_url:
        logger.error("Error: no request body and/or file detected")
        raise HTTPException(status_code=400, detail="No request body and/or file detected")

    avatar_service: AvatarReplacementService = app_state["avatar_service"]
    system_config: SystemConfig = app_state["system_config"]
    if avatar_service is None or system_config is None:
        raise HTTPException(status_code=503, detail="Avatar service not initialized")

    temp_path = await _save_upload(avatar, system_config.paths.uploads)
    success = await avatar_service.replace_avatar(
        avatar_url,
        temp_path,
        metadata=char,
        crop=parse_crop(crop),
        temp_upload=temp_path,
    )

    if not success:
        logger.error(f"An error occurred, character avatar replacement for {avatar_url} invalidated")
        raise HTTPException(status_code=500, detail="Avatar replacement failed")

    return Response(status_code=200)


@app.post("/import-url")
async def import_url(request: Optional[ImportRequest] = None):
    """Download a character card or lorebook from a provider URL."""
    url = _requested_url(request)
    if url is None:
        raise HTTPException(status_code=400, detail="url is required")

    dispatcher: ContentDispatcher = app_state["dispatcher"]
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Content dispatcher not initialized")

    try:
        content = await dispatcher.dispatch_url(url)
    except UnmatchedSourceError as e:
        logger.warning(f"Import rejected: {e}")
        raise HTTPException(status_code=404, detail="Not found")
    except DownloadFailedError as e:
        logger.error(f"Importing custom content failed: {e}")
        raise HTTPException(status_code=500, detail="Import failed")
    except Exception as e:
        logger.error(f"Importing custom content failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Import failed")

    return _content_response(content)


@app.post("/import-id")
async def import_id(request: Optional[ImportRequest] = None):
    """Re-download a character card or lorebook by opaque identifier."""
    url = _requested_url(request)
    if url is None:
        raise HTTPException(status_code=400, detail="url is required")

    dispatcher: ContentDispatcher = app_state["dispatcher"]
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Content dispatcher not initialized")

    try:
        content = await dispatcher.dispatch_identifier(url)
    except UnmatchedSourceError as e:
        logger.warning(f"Import rejected: {e}")
        raise HTTPException(status_code=404, detail="Not found")
    except DownloadFailedError as e:
        logger.error(f"Importing content by id failed: {e}")
        raise HTTPException(status_code=500, detail="Import failed")
    except Exception as e:
        logger.error(f"Importing content by id failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Import failed")

    return _content_response(content)
