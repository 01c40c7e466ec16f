"""
SSOT (Single Source of Truth) schemas for voicebill.

These canonical schemas are the ONLY models used across all modules.
No duplicated "near-same" models allowed.
"""

from .documents import (
    NUMBERED_TYPES,
    Client,
    Document,
    DocumentSelector,
    DocumentType,
    LineItem,
    SourceSnapshot,
    TransformJob,
    TransformJobConfig,
    TransformJobStatus,
    to_decimal,
)
from .intents import (
    CloneIntent,
    DeliveryMethod,
    DocumentActionIntent,
    InformationQueryIntent,
    Intent,
    IntentType,
    MergeIntent,
    SendIntent,
    TargetClient,
    TransformIntent,
    parse_intent,
)
from .modifications import ItemModifications, ItemUpdate, NewItem
from .resolution import Ambiguous, NotFound, Resolution, Resolved

__all__ = [
    # Documents
    "NUMBERED_TYPES",
    "Client",
    "Document",
    "DocumentSelector",
    "DocumentType",
    "LineItem",
    "SourceSnapshot",
    "TransformJob",
    "TransformJobConfig",
    "TransformJobStatus",
    "to_decimal",
    # Intents
    "CloneIntent",
    "DeliveryMethod",
    "DocumentActionIntent",
    "InformationQueryIntent",
    "Intent",
    "IntentType",
    "MergeIntent",
    "SendIntent",
    "TargetClient",
    "TransformIntent",
    "parse_intent",
    # Modifications
    "ItemModifications",
    "ItemUpdate",
    "NewItem",
    # Resolution
    "Ambiguous",
    "NotFound",
    "Resolution",
    "Resolved",
]
