"""
Services layer.

Orchestration on top of the matching engine and the storage accessors:
document search, number allocation, item reconciliation, client
directory upkeep, transforms and intent dispatch.
"""

from .client_directory import ClientDirectory, is_valid_email, is_valid_phone
from .dispatcher import IntentDispatcher
from .document_search import ClientDocuments, ClientDocumentSearch
from .numbering import DocumentNumberAllocator
from .reconciler import ItemReconciler, ReconciledItems, matches_keyword, normalize_items
from .results import OperationResult
from .transform import (
    MergePreview,
    MergeSlot,
    MergeSlotState,
    TransformService,
    format_transform_summary,
)

__all__ = [
    "ClientDirectory",
    "ClientDocumentSearch",
    "ClientDocuments",
    "DocumentNumberAllocator",
    "IntentDispatcher",
    "ItemReconciler",
    "MergePreview",
    "MergeSlot",
    "MergeSlotState",
    "OperationResult",
    "ReconciledItems",
    "TransformService",
    "format_transform_summary",
    "is_valid_email",
    "is_valid_phone",
    "matches_keyword",
    "normalize_items",
]
