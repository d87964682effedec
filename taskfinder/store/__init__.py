"""
Document Stores

Adapters for the external stores holding candidate task documents.
"""

from .base import DocumentStore
from .notion import NotionDocumentStore, extract_property_text, page_to_document

__all__ = [
    "DocumentStore",
    "NotionDocumentStore",
    "extract_property_text",
    "page_to_document",
]
