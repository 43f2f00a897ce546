"""Image materialization.

Generated images arrive as base64 payloads. They are persisted through the
blob store and replaced by a storage key before they enter the content list,
so a response with many images never holds decoded bytes.
"""

from __future__ import annotations

import asyncio
import logging

from chorus.engine.errors import ApiError
from chorus.storage import BlobStore, parse_data_url, to_data_url

logger = logging.getLogger(__name__)


class ImageMaterializer:
    """Persists image payloads and returns storage keys."""

    def __init__(self, blob_store: BlobStore, kind: str = "response") -> None:
        self._blob_store = blob_store
        self._kind = kind

    async def materialize(self, media_type: str, base64_data: str) -> str:
        """Store one image and return its storage key.

        Raises:
            ApiError: If the blob store fails; the request must not continue
                with a silently missing image.
        """
        data_url = to_data_url(media_type, base64_data)
        try:
            key = self._blob_store.save(self._kind, data_url)
            if asyncio.iscoroutine(key):
                key = await key
        except Exception as e:
            raise ApiError(f"Failed to store generated image: {e}") from e
        logger.debug("Stored %s image as %s", media_type, key)
        return key

    async def materialize_data_url(self, data_url: str) -> str:
        parsed = parse_data_url(data_url)
        if parsed is None:
            raise ApiError("Generated image is not a base64 data URL")
        return await self.materialize(*parsed)
