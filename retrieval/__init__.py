"""Retrieval layer: tenant knowledge sheets and the knowledge cache."""

from .sheet_loader import SheetLoader
from .sheet_sources import (
    KnowledgeSource,
    CSVSheetSource,
    HTTPSheetSource,
    MultiSheetSource,
    build_knowledge_source,
)
from .knowledge_cache import KnowledgeCache

__all__ = [
    "SheetLoader",
    "KnowledgeSource",
    "CSVSheetSource",
    "HTTPSheetSource",
    "MultiSheetSource",
    "build_knowledge_source",
    "KnowledgeCache",
]
