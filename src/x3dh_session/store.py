"""In-memory prekey store standing in for the bundle server."""

import asyncio
import logging
from typing import Optional, Set

from .models import DownloadedBundle, PrekeyBundle
from .exceptions import StorageError

logger = logging.getLogger(__name__)


class InMemoryPrekeyStore:
    """
    Single-slot prekey bundle register.

    upload() overwrites the stored bundle. download() hands out each one-time
    prekey once, lowest key id first.
    """

    def __init__(self) -> None:
        self._bundle: Optional[PrekeyBundle] = None
        self._issued: Set[int] = set()
        self._lock = asyncio.Lock()

    async def upload(self, bundle: PrekeyBundle) -> None:
        """Store bundle, replacing any previous one."""
        async with self._lock:
            self._bundle = bundle
            self._issued = set()
        logger.info(f"Stored prekey bundle with {len(bundle.one_time_prekeys)} one-time prekeys")

    async def download(self) -> DownloadedBundle:
        """
        Fetch the stored bundle with one selected one-time prekey.

        Raises:
            StorageError: If no bundle is stored or all one-time prekeys were issued
        """
        async with self._lock:
            if self._bundle is None:
                raise StorageError("No prekey bundle uploaded")

            bundle = self._bundle
            for prekey in bundle.one_time_prekeys:
                if prekey.key_id not in self._issued:
                    self._issued.add(prekey.key_id)
                    break
            else:
                raise StorageError("No one-time prekeys left in bundle")

        logger.debug(f"Issued one-time prekey {prekey.key_id}")
        return DownloadedBundle(
            identity_key=bundle.identity_key,
            verify_key=bundle.verify_key,
            signed_prekey=bundle.signed_prekey,
            signed_prekey_signature=bundle.signed_prekey_signature,
            one_time_prekey_id=prekey.key_id,
            one_time_prekey=prekey.public_key,
        )

    def remaining(self) -> int:
        """Number of one-time prekeys not yet issued."""
        if self._bundle is None:
            return 0
        return len([p for p in self._bundle.one_time_prekeys if p.key_id not in self._issued])
