"""
Resource Cache - profile images as displayable handles.

PURPOSE:
Turn opaque image references into handles the UI can display, fetching
each reference at most once per scope.

HOW IT WORKS:
1. resolve(ref) returns the cached handle if there is one
2. otherwise it joins the in-flight fetch for `ref` or starts one
3. the fetched bytes become a data: URL held by a ResourceHandle
4. release() invalidates every handle and empties the scope

LIFETIME:
A cache is a scope owned by one view. `async with ResourceCache(...)`
closes it on exit; release() alone empties it for a new reference set.
Fetches still running when the scope is released are dropped on arrival.
Resolving after close is a no-op (logged) and returns None.
"""

import asyncio
import base64
import logging
from typing import Callable, Dict, Iterable, Optional

from mentorship_hub.clients.base import ResourceFetchService
from mentorship_hub.core.errors import CollaboratorFailure, ResourceReleasedError

logger = logging.getLogger(__name__)


# ============================================================
# CONVERSION
# ============================================================

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_mime_type(content: bytes) -> str:
    for signature, mime in _SIGNATURES:
        if content.startswith(signature):
            return mime
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "image/webp"
    if content.lstrip()[:5] in (b"<?xml", b"<svg "):
        return "image/svg+xml"
    return "application/octet-stream"


def to_data_url(content: bytes) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{sniff_mime_type(content)};base64,{encoded}"


def initials(name: str) -> str:
    """Placeholder identity when no image is available: 'Asha Rao' -> 'AR'."""
    parts = [p for p in (name or "").split() if p]
    return "".join(p[0] for p in parts[:2]).upper()


# ============================================================
# HANDLES
# ============================================================

class ResourceHandle:
    """Displayable form of one resource. Unusable once released."""

    def __init__(self, ref: str, url: str):
        self.ref = ref
        self._url: Optional[str] = url

    @property
    def released(self) -> bool:
        return self._url is None

    @property
    def url(self) -> str:
        if self._url is None:
            raise ResourceReleasedError(f"Handle for '{self.ref}' was released")
        return self._url

    def release(self) -> None:
        self._url = None

    def __repr__(self):
        state = "released" if self.released else "live"
        return f"<ResourceHandle {self.ref!r} {state}>"


# ============================================================
# CACHE SCOPE
# ============================================================

class ResourceCache:
    """
    Deduplicating, scope-owned cache of ResourceHandles keyed by reference.
    """

    def __init__(
        self,
        fetcher: ResourceFetchService,
        converter: Callable[[bytes], str] = to_data_url,
    ):
        self.fetcher = fetcher
        self.converter = converter
        self._handles: Dict[str, ResourceHandle] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        # Bumped on release; fetches started under an older value are discarded
        self._generation = 0
        self.closed = False

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, ref: str) -> bool:
        return ref in self._handles

    def get(self, ref: str) -> Optional[ResourceHandle]:
        """Cached handle for `ref` without fetching."""
        return self._handles.get(ref)

    async def __aenter__(self) -> "ResourceCache":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def _load(self, ref: str, generation: int) -> Optional[ResourceHandle]:
        try:
            content = await self.fetcher.fetch_binary(ref)
        finally:
            if generation == self._generation:
                self._inflight.pop(ref, None)

        if generation != self._generation:
            logger.debug("Dropping image %s fetched for a released scope", ref)
            return None

        handle = ResourceHandle(ref, self.converter(content))
        self._handles[ref] = handle
        return handle

    async def resolve(self, ref: str) -> Optional[ResourceHandle]:
        """
        Handle for `ref`, fetching it if needed.

        Concurrent calls for the same uncached ref share one fetch.

        Returns:
            The handle, or None if the scope was closed or released meanwhile.

        Raises:
            CollaboratorFailure if the fetch failed (nothing is cached).
        """
        if self.closed:
            logger.warning("resolve(%r) on a closed image cache ignored", ref)
            return None

        handle = self._handles.get(ref)
        if handle is not None:
            return handle

        future = self._inflight.get(ref)
        if future is None:
            future = asyncio.ensure_future(self._load(ref, self._generation))
            self._inflight[ref] = future

        # One waiter being cancelled must not cancel the shared fetch
        return await asyncio.shield(future)

    async def resolve_all(self, refs: Iterable[Optional[str]]) -> Dict[str, ResourceHandle]:
        """
        Resolve many references in parallel.

        Returns:
            ref -> handle for every reference that resolved. Failed refs are
            logged and left out; callers fall back to a placeholder.
        """
        unique = [ref for ref in dict.fromkeys(refs) if ref]
        results = await asyncio.gather(
            *(self.resolve(ref) for ref in unique), return_exceptions=True
        )

        handles = {}
        for ref, result in zip(unique, results):
            if isinstance(result, CollaboratorFailure):
                logger.warning("Image %s could not be resolved: %s", ref, result)
            elif isinstance(result, BaseException):
                raise result
            elif result is not None:
                handles[ref] = result
        return handles

    def release(self) -> int:
        """
        Invalidate every handle this scope created and empty it.

        Returns:
            Number of handles released.
        """
        count = len(self._handles)
        for handle in self._handles.values():
            handle.release()
        self._handles.clear()
        self._inflight.clear()
        self._generation += 1
        if count:
            logger.debug("Released %d image handles", count)
        return count

    def close(self) -> None:
        """Release and refuse further resolution (owning view torn down)."""
        self.release()
        self.closed = True
