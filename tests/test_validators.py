"""Tests for upload validation and photo id parsing."""

from uuid import UUID

import pytest

from photo_backup.validators import (
    MAX_UPLOAD_BYTES,
    format_validation_error,
    parse_photo_id,
    validate_mime_type,
    validate_upload,
    validate_upload_size,
)


class TestValidateMimeType:
    @pytest.mark.parametrize(
        "mime",
        ["image/jpeg", "image/png", "image/heic", "image/heif", "image/webp", "IMAGE/JPEG"],
    )
    def test_accepted_types(self, mime):
        assert validate_mime_type(mime) == (True, "")

    @pytest.mark.parametrize("mime", ["text/plain", "image/gif", "video/mp4"])
    def test_rejected_types(self, mime):
        ok, reason = validate_mime_type(mime)
        assert not ok
        assert reason.startswith(f"Unsupported file type: {mime}")

    def test_missing_type_is_octet_stream(self):
        ok, reason = validate_mime_type(None)
        assert not ok
        assert "application/octet-stream" in reason


class TestValidateUpload:
    def test_valid_upload(self):
        assert validate_upload("IMG_0001.jpg", "image/jpeg", 1024) == (True, "")

    def test_mime_checked_first(self):
        ok, reason = validate_upload("", "text/plain", MAX_UPLOAD_BYTES + 1)
        assert not ok
        assert "Unsupported file type" in reason

    def test_too_large(self):
        ok, reason = validate_upload("a.jpg", "image/jpeg", MAX_UPLOAD_BYTES + 1)
        assert not ok
        assert reason == "File too large. Maximum size is 50MB"

    def test_exactly_max_size_accepted(self):
        assert validate_upload("a.jpg", "image/jpeg", MAX_UPLOAD_BYTES)[0]

    def test_custom_max_size(self):
        ok, reason = validate_upload("a.jpg", "image/png", 3 * 1024 * 1024, max_size=2 * 1024 * 1024)
        assert not ok
        assert "2MB" in reason

    @pytest.mark.parametrize("filename", [None, "", "   "])
    def test_empty_filename(self, filename):
        assert validate_upload(filename, "image/jpeg", 10) == (False, "Filename is required")


def test_validate_upload_size():
    assert validate_upload_size(MAX_UPLOAD_BYTES) == (True, "")
    assert validate_upload_size(MAX_UPLOAD_BYTES + 1) == (
        False,
        "File too large. Maximum size is 50MB",
    )


def test_format_validation_error():
    assert format_validation_error("Filename", "is required") == "Filename is required"


class TestParsePhotoId:
    def test_valid_uuid(self):
        raw = "6f1c2d3e-4a5b-4c6d-8e9f-0a1b2c3d4e5f"
        assert parse_photo_id(raw) == UUID(raw)

    @pytest.mark.parametrize("raw", ["not-a-uuid", "", "1234"])
    def test_invalid(self, raw):
        assert parse_photo_id(raw) is None
