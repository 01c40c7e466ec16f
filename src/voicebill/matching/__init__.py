"""Fuzzy matching of spoken client names."""

from voicebill.matching.clients import (
    ClientMatch,
    ClientMatcher,
    ClientSuggestion,
    SuggestionResult,
)
from voicebill.matching.phonetic import (
    SimilarityBreakdown,
    calculate_similarity,
    consonant_skeleton,
    explain_similarity,
    levenshtein_distance,
    normalize_first_char,
    phonetic_similarity,
    soundex_code,
)

__all__ = [
    "ClientMatch",
    "ClientMatcher",
    "ClientSuggestion",
    "SimilarityBreakdown",
    "SuggestionResult",
    "calculate_similarity",
    "consonant_skeleton",
    "explain_similarity",
    "levenshtein_distance",
    "normalize_first_char",
    "phonetic_similarity",
    "soundex_code",
]
