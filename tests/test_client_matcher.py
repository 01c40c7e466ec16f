"""Tests for the client matcher."""

import pytest

from voicebill.config import MatchingConfig
from voicebill.matching import ClientMatcher
from voicebill.schemas.documents import Client
from voicebill.schemas.resolution import NotFound, Resolved


def directory(*names: str) -> list[Client]:
    return [Client(id=f"c{i}", owner_id="owner-1", name=name) for i, name in enumerate(names)]


class TestFindSimilarClients:
    """Tests for ranked suggestions."""

    @pytest.fixture
    def matcher(self):
        return ClientMatcher()

    def test_misheard_name_ranks_first(self, matcher):
        """A dropped letter still puts the right client on top."""
        found = matcher.find_similar_clients("Jon Smith", directory("John Smith", "Jane Doe"))

        assert found[0].name == "John Smith"
        assert found[0].similarity > 0.8

    def test_filters_below_minimum(self, matcher):
        """Entries below min_similarity are dropped."""
        found = matcher.find_similar_clients(
            "Jon Smith", directory("John Smith", "Xavier"), min_similarity=0.5
        )
        assert [s.name for s in found] == ["John Smith"]

    def test_limit(self, matcher):
        """Never more than limit entries."""
        names = [f"Smith {i}" for i in range(10)]
        assert len(matcher.find_similar_clients("Smith", directory(*names), limit=3)) == 3

    def test_zero_limit(self, matcher):
        """A zero limit returns nothing."""
        assert matcher.find_similar_clients("Smith", directory("Smith"), limit=0) == []

    def test_ties_keep_directory_order(self, matcher):
        """Equal scores keep the order the directory had."""
        found = matcher.find_similar_clients("Smith", directory("Smith Plumbing", "Smith Roofing"))
        assert [s.name for s in found] == ["Smith Plumbing", "Smith Roofing"]

    def test_defaults_come_from_config(self):
        """Config thresholds are used when no overrides are given."""
        matcher = ClientMatcher(MatchingConfig(min_similarity=0.95, suggestion_limit=1))
        found = matcher.find_similar_clients("Smith", directory("Smith", "Smith Co", "Smyth"))
        assert [s.name for s in found] == ["Smith"]

    def test_empty_directory(self, matcher):
        """No clients, no suggestions."""
        assert matcher.find_similar_clients("anyone", []) == []


class TestExactMatch:
    """Tests for exact matching."""

    def test_first_entry_above_threshold_wins(self):
        """The first qualifying entry in directory order is returned, not the best."""
        matcher = ClientMatcher()
        # Both are >= 0.9; "John Smith Jr" comes first
        result = matcher.exact_match("John Smith", directory("John Smith Jr", "John Smith"))
        assert result.name == "John Smith Jr"
        assert result.similarity == 0.9

    def test_none_when_nothing_qualifies(self):
        """No entry >= 0.9 means no exact match."""
        assert ClientMatcher().exact_match("Jane", directory("Bob Builder")) is None

    def test_suggest_combines_both(self):
        """suggest() returns ranked suggestions and the exact match."""
        result = ClientMatcher().suggest("jane doe", directory("John Smith", "Jane Doe"))
        assert result.exact_match.name == "Jane Doe"
        assert result.suggestions[0].name == "Jane Doe"
        assert result.to_dict()["searched_for"] == "jane doe"


class TestLookupClient:
    """Tests for single-best lookups."""

    def test_confident_match(self):
        """A score >= 0.8 needs no confirmation."""
        result = ClientMatcher().lookup_client("Jon Smith", directory("Jane Doe", "John Smith"))

        assert isinstance(result, Resolved)
        assert result.value.client.name == "John Smith"
        assert result.value.needs_confirmation is False
        assert result.value.confirmation_message is None

    def test_uncertain_match_needs_confirmation(self):
        """0.5 <= score < 0.8 asks the user to confirm."""
        result = ClientMatcher().lookup_client("Cost", directory("Kos"))

        assert isinstance(result, Resolved)
        assert 0.5 <= result.value.similarity < 0.8
        assert result.value.needs_confirmation is True
        assert "Kos" in result.value.confirmation_message

    def test_no_match_below_threshold(self):
        """Below 0.5 nothing is returned."""
        result = ClientMatcher().lookup_client("Xavier", directory("Bob"))
        assert isinstance(result, NotFound)
        assert "Xavier" in result.reason

    def test_empty_directory(self):
        """An empty directory never matches."""
        assert isinstance(ClientMatcher().lookup_client("John", []), NotFound)

    def test_first_of_equal_scores_wins(self):
        """Ties resolve to the earlier directory entry."""
        result = ClientMatcher().lookup_client("Smith", directory("Smith A", "Smith B"))
        assert result.value.client.name == "Smith A"
