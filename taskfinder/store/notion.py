"""
Notion Document Store

Reads task pages from a Notion database via the public REST API and turns
them into Documents. The page title comes from the ``title`` property; the
body text is derived from the remaining structured properties.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..common.errors import DocumentStoreError
from ..common.schemas.search import Document
from .base import DocumentStore

logger = logging.getLogger("taskfinder.store.notion")

DEFAULT_API_BASE = "https://api.notion.com/v1"
DEFAULT_NOTION_VERSION = "2022-06-28"
PAGE_SIZE = 100


def extract_property_text(prop: Dict[str, Any]) -> str:
    """Plain-text value of a Notion property (empty for unsupported types)"""
    if not isinstance(prop, dict):
        return ""

    prop_type = prop.get("type", "")
    value = prop.get(prop_type)

    if prop_type in ("title", "rich_text"):
        return " ".join(t.get("plain_text", "") for t in (value or [])).strip()
    if prop_type in ("select", "status"):
        return (value or {}).get("name", "")
    if prop_type == "multi_select":
        return ", ".join(s.get("name", "") for s in (value or []))
    if prop_type == "number":
        return "" if value is None else str(value)
    if prop_type == "checkbox":
        return "checked" if value else "unchecked"
    if prop_type in ("url", "email", "phone_number"):
        return value or ""
    if prop_type == "date":
        return (value or {}).get("start", "") or ""
    return ""


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def page_to_document(page: Dict[str, Any]) -> Optional[Document]:
    """Convert a Notion page object to a Document (None if unusable)"""
    page_id = page.get("id")
    created_at = _parse_timestamp(page.get("created_time"))
    if not page_id or created_at is None:
        return None

    title = ""
    body_parts = []
    for name, prop in (page.get("properties") or {}).items():
        text = extract_property_text(prop)
        if isinstance(prop, dict) and prop.get("type") == "title":
            title = text
        elif text:
            body_parts.append(f"{name}: {text}")

    return Document(
        id=page_id,
        title=title or "Untitled",
        body_text=" ".join(body_parts),
        created_at=created_at,
        archived=bool(page.get("archived") or page.get("in_trash")),
        url=page.get("url"),
    )


class NotionDocumentStore(DocumentStore):
    """
    Document store backed by a Notion database.

    Usage:
        store = NotionDocumentStore(token="secret_...")
        documents = await store.fetch_candidates(database_id)
        await store.close()
    """

    def __init__(
        self,
        token: str,
        api_base: str = DEFAULT_API_BASE,
        notion_version: str = DEFAULT_NOTION_VERSION,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            token: Notion integration token
            api_base: REST API base URL
            notion_version: Value of the Notion-Version header
            timeout: Request timeout in seconds
            client: Preconfigured httpx client (tests, connection sharing)
        """
        super().__init__("notion")
        self._api_base = api_base.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Notion-Version": notion_version,
            "Content-Type": "application/json",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch_candidates(self, collection_id: str) -> List[Document]:
        documents: List[Document] = []
        skipped = 0
        cursor: Optional[str] = None

        while True:
            body: Dict[str, Any] = {"page_size": PAGE_SIZE}
            if cursor:
                body["start_cursor"] = cursor

            data = await self._query(collection_id, body)
            for page in data.get("results", []):
                document = page_to_document(page)
                if document is None:
                    skipped += 1
                    continue
                documents.append(document)

            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]

        if skipped:
            logger.warning("Skipped %d pages without id or created_time", skipped)
        logger.info("Fetched %d pages from database %s", len(documents), collection_id)
        return documents

    async def _query(self, database_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._api_base}/databases/{database_id}/query"
        try:
            response = await self._client.post(url, json=body, headers=self._headers)
        except httpx.HTTPError as e:
            raise DocumentStoreError(f"Notion request failed: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise DocumentStoreError(
                f"Notion query for {database_id} failed ({response.status_code}): {message}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise DocumentStoreError(f"Notion returned invalid JSON: {e}") from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
