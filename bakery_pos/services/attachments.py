# bakery_pos/services/attachments.py
from __future__ import annotations

from ..checkout.errors import ExternalServiceError
from .http import BackOfficeClient


class AttachmentClient(BackOfficeClient):
    service = "attachments"

    async def upload(self, filename: str, content: bytes, content_type: str = "image/jpeg") -> str:
        data = await self._request(
            "POST",
            "/api/upload",
            files={"file": (filename, content, content_type)},
        )
        # single upload -> {"url"}, batch endpoint -> [{"url"}]
        if isinstance(data, list):
            data = data[0] if data else None
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise ExternalServiceError(self.service, f"No URL returned for {filename}")
        return str(url)
