"""Checksum identity shared by the sync client and the storage server."""

import hashlib

from photo_backup.core.checksum import compute_checksum
from photo_backup.server.image_analysis import PillowImageAnalyzer


def test_known_digest():
    assert compute_checksum(b"abc") == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


def test_empty_input():
    assert compute_checksum(b"") == hashlib.sha256(b"").hexdigest()


def test_lowercase_hex():
    digest = compute_checksum(b"\x00\xff" * 100)
    assert len(digest) == 64
    assert digest == digest.lower()


def test_any_byte_change_changes_digest(jpeg_bytes):
    altered = bytearray(jpeg_bytes)
    altered[-3] ^= 0x01
    assert compute_checksum(bytes(altered)) != compute_checksum(jpeg_bytes)


def test_client_and_server_agree(jpeg_bytes):
    """The server analyzer hashes exactly like the sync client does."""
    assert PillowImageAnalyzer().calculate_checksum(jpeg_bytes) == compute_checksum(jpeg_bytes)
