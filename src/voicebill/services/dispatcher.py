"""Intent dispatch.

Routes each tagged intent variant to the service that handles it. Every
variant is handled explicitly; an unknown type is a programming error.

- document_transform, document_clone, document_merge: TransformService
- document_send, information_query: document search only (delivery and
  answering happen outside this package)
- document_action: resolve or create the client (document creation
  happens outside this package)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Union

from voicebill.errors import (
    ErrorKind,
    IntentParseError,
    NotAuthenticatedError,
    PersistenceError,
    require_owner,
)
from voicebill.schemas.intents import (
    CloneIntent,
    DocumentActionIntent,
    InformationQueryIntent,
    MergeIntent,
    SendIntent,
    TransformIntent,
    parse_intent,
)
from voicebill.schemas.resolution import Ambiguous, NotFound, Resolved, unhandled_resolution
from voicebill.services.results import OperationResult
from voicebill.services.transform import MergePreview, TransformService

if TYPE_CHECKING:
    from voicebill.schemas.intents import Intent

logger = logging.getLogger(__name__)

DispatchResult = Union[OperationResult, MergePreview]


class IntentDispatcher:
    """Sends parsed intents to the right service."""

    def __init__(self, service: TransformService) -> None:
        self.service = service

    def dispatch_raw(
        self, owner_id: str, intent_type: str, payload: dict[str, Any]
    ) -> DispatchResult:
        """Parse an upstream intent tag and payload, then dispatch it.

        A payload that does not fit its intent type fails as UNSUPPORTED.
        """
        try:
            intent = parse_intent(intent_type, payload)
        except IntentParseError as e:
            logger.warning("Rejected %s payload: %s", intent_type, e)
            return OperationResult.fail(ErrorKind.UNSUPPORTED, str(e))
        return self.dispatch(owner_id, intent)

    def dispatch(self, owner_id: str, intent: Intent) -> DispatchResult:
        """Run one intent for an owner."""
        logger.debug("Dispatching %s", intent.intent_type.value)

        if isinstance(intent, TransformIntent):
            return self.service.execute_transform(
                owner_id,
                intent.target_type,
                source_document_id=intent.source_document_id,
                document_number=intent.document_number,
                client_name=intent.client_name,
                document_type=intent.document_type,
                selector=intent.selector,
            )
        if isinstance(intent, CloneIntent):
            return self.service.clone_document(
                owner_id,
                intent.source_client,
                target_client=intent.target_client,
                document_type=intent.document_type,
                selector=intent.selector,
                modifications=intent.modifications,
            )
        if isinstance(intent, MergeIntent):
            return self.service.prepare_merge(
                owner_id,
                intent.source_clients,
                document_type=intent.document_type,
                target_client=intent.target_client,
            )
        if isinstance(intent, (SendIntent, InformationQueryIntent)):
            return self._find_documents(owner_id, intent)
        if isinstance(intent, DocumentActionIntent):
            return self._resolve_client(owner_id, intent)
        raise AssertionError(f"Unhandled intent: {type(intent).__name__}")

    def _find_documents(
        self, owner_id: str, intent: Union[SendIntent, InformationQueryIntent]
    ) -> OperationResult:
        try:
            found = self.service.search.search(
                owner_id, intent.client_name, intent.document_type, intent.selector
            )
        except NotAuthenticatedError as e:
            return OperationResult.fail(ErrorKind.NOT_AUTHENTICATED, str(e))
        except PersistenceError:
            logger.exception("Document search failed")
            return OperationResult.fail(
                ErrorKind.PERSISTENCE_FAILURE, "Could not search documents right now"
            )

        if isinstance(found, Resolved):
            match = found.value
            return OperationResult.ok(
                client=match.client, documents=match.documents, document=match.selected
            )
        if isinstance(found, Ambiguous):
            return OperationResult.fail(
                ErrorKind.AMBIGUOUS_MATCH, found.reason, candidates=found.candidates
            )
        if isinstance(found, NotFound):
            return OperationResult.fail(
                ErrorKind.NOT_FOUND, found.reason, suggestions=found.suggestions
            )
        raise unhandled_resolution(found)

    def _resolve_client(self, owner_id: str, intent: DocumentActionIntent) -> OperationResult:
        try:
            owner_id = require_owner(owner_id)
            client = self.service.directory.resolve_or_create(
                owner_id,
                intent.client.name,
                email=intent.client.email,
                phone=intent.client.phone,
                address=intent.client.address,
            )
        except NotAuthenticatedError as e:
            return OperationResult.fail(ErrorKind.NOT_AUTHENTICATED, str(e))
        except PersistenceError:
            logger.exception("Client resolution failed")
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, "Could not save the client")
        return OperationResult.ok(client=client)
