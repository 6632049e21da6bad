"""
In-process cache for the two upstream credentials.

The storage session is authorized once and reused until a storage call
reports that it is no longer accepted. The catalog token carries an explicit
expiry and is refreshed five minutes before the platform would reject it.
Neither lease is guarded by a lock: concurrent callers may both refresh,
and the last writer wins.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from relay.storage import StorageSession

logger = logging.getLogger(__name__)

CATALOG_EXPIRY_MARGIN_SECONDS = 300
DEFAULT_CATALOG_EXPIRES_IN = 86399

StorageAuthorizer = Callable[[], StorageSession]
# Returns (access_token, expires_in seconds or None).
CatalogTokenExchanger = Callable[[], Tuple[str, Optional[int]]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class CatalogLease:
    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class CredentialCache:
    """Holds and refreshes the storage session and the catalog token."""

    def __init__(
        self,
        authorize_storage: StorageAuthorizer,
        exchange_catalog_token: CatalogTokenExchanger,
        clock: Clock = time.time,
    ):
        self._authorize_storage = authorize_storage
        self._exchange_catalog_token = exchange_catalog_token
        self._clock = clock
        self._storage_session: Optional[StorageSession] = None
        self._catalog_lease: Optional[CatalogLease] = None

    def get_object_storage_session(self) -> StorageSession:
        session = self._storage_session
        if session is not None:
            return session
        logger.info("Authorizing object storage account")
        session = self._authorize_storage()
        self._storage_session = session
        return session

    def invalidate_object_storage_session(self) -> None:
        """Forget the storage session so the next caller re-authorizes."""
        if self._storage_session is not None:
            logger.warning("Dropping rejected object storage session")
        self._storage_session = None

    def get_catalog_token(self) -> str:
        lease = self._catalog_lease
        if lease is not None and lease.is_valid(self._clock()):
            return lease.token

        token, expires_in = self._exchange_catalog_token()
        if not expires_in:
            expires_in = DEFAULT_CATALOG_EXPIRES_IN
        expires_at = self._clock() + (expires_in - CATALOG_EXPIRY_MARGIN_SECONDS)
        self._catalog_lease = CatalogLease(token=token, expires_at=expires_at)
        logger.info(
            "Refreshed catalog access token (valid for %ss)",
            expires_in - CATALOG_EXPIRY_MARGIN_SECONDS,
        )
        return token

    @property
    def catalog_lease(self) -> Optional[CatalogLease]:
        return self._catalog_lease
