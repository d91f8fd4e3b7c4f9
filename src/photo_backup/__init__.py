"""Self-hosted photo backup: storage server and resumable sync client."""

__version__ = "1.0.0"
