"""HttpTransport Port Interface.

Contract: one GET round trip returning (status, decoded JSON body). The body is
None for non-2xx responses. Transport failures raise; the caller decides how to
classify them.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol


class HttpTransport(Protocol):
    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> tuple[int, Any]: ...

    async def close(self) -> None: ...
