"""Network reachability for the sync engine."""

import logging
from abc import ABC, abstractmethod
from enum import Enum

import requests

from ..core.client import PhotoClient
from ..errors import PhotoBackupError

logger = logging.getLogger(__name__)


class NetworkStatus(str, Enum):
    UNAVAILABLE = "unavailable"
    CELLULAR = "cellular"
    WIFI = "wifi"


class NetworkMonitor(ABC):
    @abstractmethod
    def status(self) -> NetworkStatus:
        """Return the current connection type (blocking).

        Implementations report a failed check as
        ``NetworkStatus.UNAVAILABLE`` rather than raising.
        """


class ServerProbeMonitor(NetworkMonitor):
    """Treats a successful server health check as an unmetered link.

    A home server is normally only reachable from the home network, so
    reachability doubles as the WiFi signal.  Any client or transport
    error during the health check (refused connection, non-2xx status, a reply
    that is not a health document) reports ``UNAVAILABLE``.
    """

    def __init__(self, client: PhotoClient):
        self.client = client

    def status(self) -> NetworkStatus:
        try:
            self.client.health_check()
        except (PhotoBackupError, requests.RequestException) as exc:
            logger.debug("Server probe failed: %s", exc)
            return NetworkStatus.UNAVAILABLE
        return NetworkStatus.WIFI
