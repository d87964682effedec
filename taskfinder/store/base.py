"""
Base Document Store

Abstract interface for the external store holding candidate documents.
"""

from abc import ABC, abstractmethod
from typing import List

from ..common.schemas.search import Document


class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    Each store must implement:
    - fetch_candidates: return every document of a collection
    """

    def __init__(self, source_name: str):
        """
        Args:
            source_name: Name of the backing service (e.g., "notion")
        """
        self.source_name = source_name

    @abstractmethod
    async def fetch_candidates(self, collection_id: str) -> List[Document]:
        """
        Fetch all candidate documents of a collection.

        Args:
            collection_id: Store-specific collection identifier

        Returns:
            Documents with id, title, derived body text and creation time

        Raises:
            DocumentStoreError: the store could not be queried
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the store"""
        return None
