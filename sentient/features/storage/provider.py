"""
Object store protocol and the Supabase Storage implementation.

Proof-of-payment files live in a single bucket; the workflow only needs
upload, public URL, list and remove.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Generator, Protocol, List, Optional
from urllib.parse import quote

import httpx

from sentient.core.backend_http import DEFAULT_TIMEOUT, backend_call, ensure_ok
from sentient.core.config import settings

LIST_PAGE_SIZE = 100


@dataclass
class StoredObject:
    """One entry returned by ObjectStore.list()."""
    name: str
    size: Optional[int] = None
    content_type: Optional[str] = None
    created_at: Optional[datetime] = None


class ObjectStore(Protocol):
    """
    Protocol for object stores holding uploaded proof files.

    Implementations raise BackendError on any failure.
    """

    def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        ...

    def get_public_url(self, key: str) -> str:
        ...

    def _list_page(self, prefix: str, offset: int) -> list:
        body = {
            "prefix": "",
            "search": prefix,
            "limit": LIST_PAGE_SIZE,
            "offset": offset,
            "sortBy": {"column": "created_at", "order": "desc"},
        }
        with backend_call("list proofs"):
            response = self._client.post(
                f"{self.base_url}/storage/v1/object/list/{self.bucket}",
                json=body,
                headers=self._headers,
            )
        return ensure_ok(response, "list proofs").json()

    def list(self, prefix: str = "") -> List[StoredObject]:
        """All objects whose name starts with prefix, fetched page by page."""
        entries = []
        offset = 0
        while True:
            page = self._list_page(prefix, offset)
            for item in page:
                name = item.get("name", "")
                if not name.startswith(prefix):
                    continue
                meta = item.get("metadata") or {}
                entries.append(
                    StoredObject(
                        name=name,
                        size=meta.get("size"),
                        content_type=meta.get("mimetype"),
                        created_at=_parse_timestamp(item.get("created_at")),
                    )
                )
            if len(page) < LIST_PAGE_SIZE:
                return entries
            offset += LIST_PAGE_SIZE

    def remove(self, keys: List[str]) -> None:
        if not keys:
            return
        with backend_call("remove proofs"):
            response = self._client.request(
                "DELETE",
                f"{self.base_url}/storage/v1/object/{self.bucket}",
                json={"prefixes": keys},
                headers=self._headers,
            )
        ensure_ok(response, "remove proofs")

    def close(self) -> None:
        self._client.close()


def storage_enabled() -> bool:
    """Check if proof storage is configured."""
    return bool(settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY)


def get_object_store() -> Generator[Optional[ObjectStore], None, None]:
    """FastAPI dependency: proof store, or None when storage is not configured."""
    if not storage_enabled():
        yield None
        return
    store = SupabaseStorage(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_ROLE_KEY,
        settings.PROOF_BUCKET,
    )
    try:
        yield store
    finally:
        store.close()
