"""QQ avatar download adapter.

Avatars are public images served by QQ's CDN, keyed by account or group
number, so no QQ session is needed to fetch them.
"""

from __future__ import annotations

from typing import Optional

import httpx

from core.models import RoomKind, room_kind


def avatar_url(qq_room_id: int) -> str:
    """Return the CDN URL of the largest avatar for a QQ room."""

    if room_kind(qq_room_id) is RoomKind.GROUP:
        group_id = -qq_room_id
        return f"https://p.qlogo.cn/gh/{group_id}/{group_id}/0"
    return f"https://q1.qlogo.cn/g?b=qq&nk={qq_room_id}&s=0"


class QLogoAvatarSource:
    """AvatarSource that downloads avatars over HTTPS."""

    def __init__(self, timeout: float = 10, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._timeout = timeout
        self._transport = transport

    async def fetch(self, qq_room_id: int) -> bytes:
        url = avatar_url(qq_room_id)
        try:
            # The friend avatar endpoint answers with a redirect to the image.
            async with httpx.AsyncClient(
                timeout=self._timeout, follow_redirects=True, transport=self._transport
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RuntimeError(
                f"Avatar download failed with HTTP {e.response.status_code}: {url}"
            ) from e
        except httpx.RequestError as e:
            raise RuntimeError(f"Avatar download failed: {url}: {e}") from e
        return response.content
