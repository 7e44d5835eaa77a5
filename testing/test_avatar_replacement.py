"""
Tests for the avatar replacement workflow.

Tests cover:
- Metadata kept from the existing card or supplied by the caller
- Crop and resize applied to the new image
- Thumbnail invalidation and temporary upload cleanup
- Existing card untouched on every failure path
"""

import asyncio
import io
import json

import pytest
from PIL import Image, PngImagePlugin

from card_intake.services import avatar_replacement
from card_intake.services.avatar_replacement import AvatarReplacementService
from card_intake.services.character_cards import PNGMetadataHandler, MetadataCodecError
from card_intake.services.file_storage import ThumbnailCache
from card_intake.services.image_transform import CropSpec

METADATA = json.dumps({"spec": "chara_card_v2", "data": {"name": "Mira"}})


def make_png(size=(64, 96), color=(10, 200, 10)) -> bytes:
    output = io.BytesIO()
    Image.new("RGB", size, color).save(output, format="PNG")
    return output.getvalue()


@pytest.fixture
def workspace(tmp_path):
    characters = tmp_path / "characters"
    characters.mkdir()
    card = characters / "mira.png"
    card.write_bytes(PNGMetadataHandler.write_card(make_png(), METADATA))

    thumbnails = ThumbnailCache(tmp_path / "thumbnails")
    service = AvatarReplacementService(characters, thumbnails, avatar_size=(32, 48))
    return service, card, thumbnails


def card_name(data: bytes) -> str:
    return json.loads(PNGMetadataHandler.read_card(data))["data"]["name"]


class TestReplaceAvatar:
    """Test suite for AvatarReplacementService.replace_avatar."""

    def test_keeps_existing_metadata(self, workspace):
        service, card, _ = workspace
        new_image = make_png(size=(200, 100), color=(200, 10, 10))

        assert asyncio.run(service.replace_avatar("mira.png", new_image)) is True

        written = card.read_bytes()
        assert card_name(written) == "Mira"
        image = Image.open(io.BytesIO(written))
        assert image.size == (200, 100)
        assert image.convert("RGB").getpixel((0, 0))[0] > 150

    def test_uses_supplied_metadata(self, workspace):
        service, card, _ = workspace
        metadata = json.dumps({"data": {"name": "Renamed"}})

        assert asyncio.run(service.replace_avatar("mira.png", make_png(), metadata=metadata)) is True
        assert card_name(card.read_bytes()) == "Renamed"

    def test_applies_crop_and_resize(self, workspace):
        service, card, _ = workspace
        crop = CropSpec(x=10, y=10, width=50, height=50, want_resize=True)

        assert asyncio.run(service.replace_avatar("mira.png", make_png(size=(300, 300)), crop=crop)) is True
        assert Image.open(io.BytesIO(card.read_bytes())).size == (32, 48)

    def test_invalidates_thumbnail(self, workspace):
        service, _, thumbnails = workspace
        thumbnail = thumbnails.get_thumbnail_path("avatar", "mira.png")
        thumbnail.parent.mkdir(parents=True)
        thumbnail.write_bytes(b"stale")

        assert asyncio.run(service.replace_avatar("mira.png", make_png())) is True
        assert not thumbnail.exists()

    def test_removes_temporary_upload(self, workspace, tmp_path):
        service, _, _ = workspace
        upload = tmp_path / "upload.tmp"
        upload.write_bytes(make_png())

        assert asyncio.run(service.replace_avatar("mira.png", upload, temp_upload=upload)) is True
        assert not upload.exists()

    def test_removes_temporary_upload_on_failure(self, workspace, tmp_path):
        service, _, _ = workspace
        upload = tmp_path / "upload.tmp"
        upload.write_bytes(make_png())

        assert asyncio.run(service.replace_avatar("missing.png", upload, temp_upload=upload)) is False
        assert not upload.exists()


class TestReplaceAvatarFailures:
    """The existing card must be byte-for-byte unchanged after any failure."""

    def test_embed_failure_leaves_card_untouched(self, workspace, monkeypatch):
        service, card, _ = workspace
        before = card.read_bytes()

        def fail(png_data, metadata):
            raise MetadataCodecError("boom")

        monkeypatch.setattr(PNGMetadataHandler, "write_card", staticmethod(fail))

        assert asyncio.run(service.replace_avatar("mira.png", make_png())) is False
        assert card.read_bytes() == before

    def test_undecodable_buffer_leaves_card_untouched(self, workspace):
        service, card, _ = workspace
        before = card.read_bytes()

        assert asyncio.run(service.replace_avatar("mira.png", b"not an image")) is False
        assert card.read_bytes() == before

    def test_existing_card_without_metadata_fails(self, workspace):
        service, card, _ = workspace
        card.write_bytes(make_png())
        before = card.read_bytes()

        assert asyncio.run(service.replace_avatar("mira.png", make_png(color=(1, 1, 1)))) is False
        assert card.read_bytes() == before

    @pytest.mark.parametrize("name", ["missing.png", "../outside.png", ""])
    def test_bad_paths_fail(self, workspace, tmp_path, name):
        service, _, _ = workspace
        (tmp_path / "outside.png").write_bytes(PNGMetadataHandler.write_card(make_png(), METADATA))

        assert asyncio.run(service.replace_avatar(name, make_png())) is False
        assert card_name((tmp_path / "outside.png").read_bytes()) == "Mira"

    def test_non_ascii_card_chunk_leaves_card_untouched(self, workspace):
        service, card, _ = workspace
        info = PngImagePlugin.PngInfo()
        info.add_itxt("chara", "café not base64")
        output = io.BytesIO()
        Image.new("RGB", (16, 16)).save(output, format="PNG", pnginfo=info)
        card.write_bytes(output.getvalue())
        before = card.read_bytes()

        assert asyncio.run(service.replace_avatar("mira.png", make_png())) is False
        assert card.read_bytes() == before

    def test_oversized_upload_leaves_card_untouched(self, workspace, monkeypatch):
        service, card, _ = workspace
        before = card.read_bytes()
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        assert asyncio.run(service.replace_avatar("mira.png", make_png(size=(200, 200)), metadata=METADATA)) is False
        assert card.read_bytes() == before

    def test_unexpected_error_returns_false(self, workspace, monkeypatch):
        service, card, _ = workspace
        before = card.read_bytes()

        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(avatar_replacement, "transform_image", explode)

        assert asyncio.run(service.replace_avatar("mira.png", make_png())) is False
        assert card.read_bytes() == before


class TestThumbnailKey:
    """The thumbnail key is the card path relative to the characters directory."""

    def test_normalized_name_invalidates_canonical_thumbnail(self, workspace):
        service, _, thumbnails = workspace
        canonical = thumbnails.get_thumbnail_path("avatar", "mira.png")
        canonical.parent.mkdir(parents=True)
        canonical.write_bytes(b"stale")

        assert asyncio.run(service.replace_avatar("../characters/./mira.png", make_png())) is True
        assert not canonical.exists()

    def test_nested_card_uses_posix_relative_key(self, workspace):
        service, card, thumbnails = workspace
        nested = card.parent / "group" / "ally.png"
        nested.parent.mkdir()
        nested.write_bytes(card.read_bytes())
        thumbnail = thumbnails.get_thumbnail_path("avatar", "group/ally.png")
        thumbnail.parent.mkdir(parents=True)
        thumbnail.write_bytes(b"stale")

        assert asyncio.run(service.replace_avatar("group/../group/ally.png", make_png())) is True
        assert not thumbnail.exists()
