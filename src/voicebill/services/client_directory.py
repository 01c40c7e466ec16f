"""Client directory maintenance.

Clients are created on demand when a dictated name has no confident match,
and their contact fields are filled in or corrected later. Clients are
never deleted here.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Optional

from voicebill.errors import ErrorKind, NotAuthenticatedError, PersistenceError, require_owner
from voicebill.matching.clients import ClientMatcher
from voicebill.schemas.documents import Client, new_id
from voicebill.schemas.resolution import Resolved
from voicebill.services.results import OperationResult

if TYPE_CHECKING:
    from voicebill.config import MatchingConfig
    from voicebill.services.accessors import ClientAccessor

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
PHONE_PATTERN = re.compile(r"^\+?[0-9]{7,15}$")
PHONE_SEPARATORS = re.compile(r"[\s\-.()]")


def is_valid_email(email: str) -> bool:
    """Basic address format check, at most 254 characters."""
    return bool(email) and len(email) <= 254 and EMAIL_PATTERN.match(email) is not None


def is_valid_phone(phone: str) -> bool:
    """7 to 15 digits, optional leading +, common separators ignored."""
    return bool(phone) and PHONE_PATTERN.match(PHONE_SEPARATORS.sub("", phone)) is not None


class ClientDirectory:
    """Resolve-or-create and contact updates for one store."""

    def __init__(self, clients: ClientAccessor, config: MatchingConfig | None = None) -> None:
        self.clients = clients
        self.matcher = ClientMatcher(config)

    def resolve_or_create(
        self,
        owner_id: str,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Client:
        """
        Return the confidently matching client, or create one.

        A match that would need confirmation is not reused. Contact fields
        missing on a reused client are filled from the arguments.

        Raises:
            NotAuthenticatedError: owner_id is missing
            ValueError: name is empty
            PersistenceError: the store failed
        """
        owner_id = require_owner(owner_id)
        name = (name or "").strip()
        if not name:
            raise ValueError("Client name is required")

        lookup = self.matcher.lookup_client(name, self.clients.list_clients(owner_id))
        if isinstance(lookup, Resolved) and not lookup.value.needs_confirmation:
            client = lookup.value.client
            missing = {
                key: value
                for key, value in (("email", email), ("phone", phone), ("address", address))
                if value and not getattr(client, key)
            }
            if missing and self.clients.update_client(owner_id, client.id, **missing):
                for key, value in missing.items():
                    setattr(client, key, value)
                logger.info("Filled %s for client %s", ", ".join(sorted(missing)), client.name)
            return client

        client = self.clients.create_client(
            Client(
                id=new_id(),
                owner_id=owner_id,
                name=name,
                email=email or None,
                phone=phone or None,
                address=address or None,
            )
        )
        logger.info("Created client %s (%s)", client.name, client.id)
        return client

    def update_contact(
        self,
        owner_id: str,
        client_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> OperationResult:
        """Update a client's contact fields.

        None leaves a field unchanged; an empty string clears email or phone.
        """
        try:
            owner_id = require_owner(owner_id)
        except NotAuthenticatedError as e:
            return OperationResult.fail(ErrorKind.NOT_AUTHENTICATED, str(e))

        if email and not is_valid_email(email):
            return OperationResult.fail(ErrorKind.UNSUPPORTED, "Invalid email format")
        if phone and not is_valid_phone(phone):
            return OperationResult.fail(ErrorKind.UNSUPPORTED, "Invalid phone format")

        fields: dict[str, Optional[str]] = {}
        if email is not None:
            fields["email"] = email or None
        if phone is not None:
            fields["phone"] = phone or None
        if address is not None:
            fields["address"] = address.strip() or None
        if name is not None:
            if not name.strip():
                return OperationResult.fail(ErrorKind.UNSUPPORTED, "Client name cannot be empty")
            fields["name"] = name.strip()
        if not fields:
            return OperationResult.fail(ErrorKind.UNSUPPORTED, "No data to update")

        try:
            if self.clients.get_client(owner_id, client_id) is None:
                return OperationResult.fail(ErrorKind.NOT_FOUND, "Client not found")
            self.clients.update_client(owner_id, client_id, **fields)
            client = self.clients.get_client(owner_id, client_id)
        except PersistenceError:
            logger.exception("Client update failed for %s", client_id)
            return OperationResult.fail(ErrorKind.PERSISTENCE_FAILURE, "Failed to update client")

        logger.info("Updated client %s: %s", client_id, ", ".join(sorted(fields)))
        return OperationResult.ok(client=client)
