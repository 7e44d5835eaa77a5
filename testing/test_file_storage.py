"""
Tests for atomic writes and thumbnail invalidation.
"""

import os
import stat

import pytest

from card_intake.services.file_storage import PersistError, ThumbnailCache, atomic_write


class TestAtomicWrite:
    """Test suite for atomic_write."""

    def test_replaces_contents(self, tmp_path):
        target = tmp_path / "card.png"
        target.write_bytes(b"old")
        atomic_write(target, b"new")
        assert target.read_bytes() == b"new"
        assert [p.name for p in tmp_path.iterdir()] == ["card.png"]

    def test_creates_missing_file(self, tmp_path):
        target = tmp_path / "fresh.png"
        atomic_write(target, b"data")
        assert target.read_bytes() == b"data"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_keeps_permissions(self, tmp_path):
        target = tmp_path / "card.png"
        target.write_bytes(b"old")
        target.chmod(0o640)
        atomic_write(target, b"new")
        assert stat.S_IMODE(target.stat().st_mode) == 0o640

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(PersistError):
            atomic_write(tmp_path / "nope" / "card.png", b"data")


class TestThumbnailCache:
    """Test suite for ThumbnailCache."""

    def test_invalidate_removes_thumbnail(self, tmp_path):
        cache = ThumbnailCache(tmp_path)
        thumbnail = cache.get_thumbnail_path("avatar", "mira.png")
        thumbnail.parent.mkdir(parents=True)
        thumbnail.write_bytes(b"thumb")

        assert cache.invalidate("avatar", "mira.png") is True
        assert not thumbnail.exists()

    def test_invalidate_missing_is_noop(self, tmp_path):
        assert ThumbnailCache(tmp_path).invalidate("avatar", "mira.png") is False
