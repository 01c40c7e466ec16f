"""Client matcher for resolving a spoken name against a client directory.

Ranks directory entries with calculate_similarity() and applies the
configured thresholds:

- Suggestions: every entry scoring >= min_similarity, best first
- Exact match: first entry in directory order scoring >= exact_threshold
- Lookup: the single best entry if it scores >= lookup_threshold, flagged
  for confirmation below confirm_threshold
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from voicebill.matching.phonetic import calculate_similarity
from voicebill.schemas.resolution import NotFound, Resolution, Resolved

if TYPE_CHECKING:
    from voicebill.config import MatchingConfig
    from voicebill.schemas.documents import Client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientSuggestion:
    """A ranked candidate client for disambiguation. Never persisted."""

    id: str
    name: str
    similarity: float
    invoice_count: int = 0
    estimate_count: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "similarity": round(self.similarity, 4),
            "invoice_count": self.invoice_count,
            "estimate_count": self.estimate_count,
        }


@dataclass(frozen=True)
class ClientMatch:
    """Best directory entry for a lookup."""

    client: Client
    similarity: float
    needs_confirmation: bool = False

    @property
    def confirmation_message(self) -> Optional[str]:
        """Prompt shown when the match is plausible but uncertain."""
        if not self.needs_confirmation:
            return None
        return f"Found possible match: {self.client.name}. Did you mean this client?"


@dataclass(frozen=True)
class SuggestionResult:
    """Ranked suggestions plus the exact match, if any."""

    query: str
    suggestions: list[ClientSuggestion]
    exact_match: Optional[ClientSuggestion] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "searched_for": self.query,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "exact_match": self.exact_match.to_dict() if self.exact_match else None,
        }


class ClientMatcher:
    """Ranks a client directory against a query name.

    Thresholds default to MatchingConfig values. The matcher holds no state
    beyond its thresholds and never touches storage: callers pass in the
    directory they already loaded for one owner.
    """

    def __init__(self, config: MatchingConfig | None = None) -> None:
        """Initialize the matcher.

        Args:
            config: Matching thresholds. Defaults are used when None.
        """
        if config is None:
            from voicebill.config import MatchingConfig

            config = MatchingConfig()
        self.config = config

    def score(self, query: str, client: Client) -> float:
        """Similarity between the query and one client's name."""
        return calculate_similarity(query, client.name)

    def find_similar_clients(
        self,
        query: str,
        directory: Sequence[Client],
        min_similarity: float | None = None,
        limit: int | None = None,
    ) -> list[ClientSuggestion]:
        """Score every directory entry and return the best ones.

        Args:
            query: Spoken or typed client name.
            directory: Clients of a single owner.
            min_similarity: Minimum score to keep (default from config).
            limit: Maximum suggestions (default from config).

        Returns:
            Suggestions sorted by similarity descending. Ties keep directory order.
        """
        if min_similarity is None:
            min_similarity = self.config.min_similarity
        if limit is None:
            limit = self.config.suggestion_limit
        if limit <= 0:
            return []

        scored = [
            ClientSuggestion(id=client.id, name=client.name, similarity=self.score(query, client))
            for client in directory
        ]
        kept = [s for s in scored if s.similarity >= min_similarity]
        kept.sort(key=lambda s: s.similarity, reverse=True)
        return kept[:limit]

    def exact_match(self, query: str, directory: Sequence[Client]) -> Optional[ClientSuggestion]:
        """First entry in directory order scoring at least exact_threshold."""
        for client in directory:
            similarity = self.score(query, client)
            if similarity >= self.config.exact_threshold:
                return ClientSuggestion(id=client.id, name=client.name, similarity=similarity)
        return None

    def suggest(self, query: str, directory: Sequence[Client]) -> SuggestionResult:
        """Ranked suggestions and exact match in one pass over the directory."""
        return SuggestionResult(
            query=query,
            suggestions=self.find_similar_clients(query, directory),
            exact_match=self.exact_match(query, directory),
        )

    def lookup_client(self, query: str, directory: Sequence[Client]) -> Resolution[ClientMatch]:
        """Resolve the query to the single best client.

        Returns:
            Resolved(ClientMatch) when the best score >= lookup_threshold;
            needs_confirmation is set below confirm_threshold.
            NotFound otherwise.
        """
        best: Client | None = None
        best_score = -1.0
        for client in directory:
            similarity = self.score(query, client)
            # Strictly greater: the first of equally good entries wins
            if similarity > best_score:
                best, best_score = client, similarity

        if best is None or best_score < self.config.lookup_threshold:
            logger.debug("No client matching %r (best score %.2f)", query, max(best_score, 0.0))
            return NotFound(reason=f'No client found matching "{query}"')

        needs_confirmation = best_score < self.config.confirm_threshold
        if needs_confirmation:
            logger.info(
                "Client %r is an uncertain match for %r (%.2f)", best.name, query, best_score
            )
        return Resolved(
            ClientMatch(client=best, similarity=best_score, needs_confirmation=needs_confirmation)
        )
