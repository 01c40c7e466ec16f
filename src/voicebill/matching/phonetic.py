"""Phonetic string similarity for resolving spoken client names.

Speech-to-text regularly mis-spells names ("Kos" for "Cost", "Jon" for
"John"). The score combines four independent signals and takes the best:

- Edit distance: normalized Levenshtein ratio
- Phonetic: transcription-confusion substitutions, then a Soundex-like code
- Consonant skeleton: vowels stripped, similar consonants collapsed
- Word level: best per-word edit ratio for multi-word names

A first-letter bonus is added when the leading sounds agree. Every function
here is pure and deterministic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Score tiers
EXACT_SCORE = 1.0
CONTAINS_SCORE = 0.9
PHONETIC_EQUAL_SCORE = 0.85
SOUNDEX_FULL_SCORE = 0.8
SOUNDEX_PREFIX3_SCORE = 0.7
SOUNDEX_PREFIX2_SCORE = 0.6
SKELETON_EQUAL_SCORE = 0.75
SKELETON_CONTAINS_SCORE = 0.65
WORD_MATCH_MIN_RATIO = 0.7
WORD_MATCH_WEIGHT = 0.8
FIRST_LETTER_BONUS = 0.1

SOUNDEX_LENGTH = 4

# Common speech-to-text confusions, applied in order
PHONETIC_SUBSTITUTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(pattern), replacement)
    for pattern, replacement in [
        (r"ph", "f"),
        (r"ck", "k"),
        (r"gh", ""),
        (r"tion", "shun"),
        (r"sion", "shun"),
        (r"ee", "i"),
        (r"ea", "e"),
        (r"oo", "u"),
        (r"ey", "ee"),
        (r"ie", "ee"),
        (r"y$", "ee"),
        (r"ll", "l"),
        (r"ss", "s"),
        (r"tt", "t"),
        (r"nn", "n"),
        (r"rr", "r"),
        (r"c([ei])", r"s\1"),
        (r"qu", "kw"),
        (r"x", "ks"),
        (r"ough", "o"),
        (r"augh", "af"),
        (r"sch", "sk"),
        (r"tch", "ch"),
        (r"wr", "r"),
        (r"kn", "n"),
        (r"mb$", "m"),
        (r"mn$", "m"),
    ]
]

# Consonant → digit groups for the Soundex-like code
SOUNDEX_DIGITS = {
    "b": "1",
    "f": "1",
    "p": "1",
    "v": "1",
    "c": "2",
    "g": "2",
    "j": "2",
    "k": "2",
    "q": "2",
    "s": "2",
    "x": "2",
    "z": "2",
    "d": "3",
    "t": "3",
    "l": "4",
    "m": "5",
    "n": "5",
    "r": "6",
}

# Letters that separate consonants so a repeated digit is kept
SOUNDEX_SEPARATORS = frozenset("aeiouhwy")

_VOWELS = re.compile(r"[aeiou]")
_DOUBLED = re.compile(r"(.)\1+")


def normalize_text(value: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(value.lower().split())


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of single-character edits turning a into b."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def edit_similarity(a: str, b: str) -> float:
    """Levenshtein distance scaled to a similarity in [0, 1]."""
    longest = max(len(a), len(b))
    if longest == 0:
        return EXACT_SCORE
    return 1.0 - levenshtein_distance(a, b) / longest


def normalize_first_char(char: str) -> str:
    """Map a leading letter onto its sound group (c/k/q, s/z, g/j, f/v/p)."""
    if char and char in "ckq":
        return "k"
    if char and char in "sz":
        return "s"
    if char and char in "gj":
        return "g"
    if char and char in "fvp":
        return "f"
    return char


def consonant_skeleton(value: str) -> str:
    """Strip vowels and collapse similar consonants.

    "Cost" -> "kst", "Kos" -> "ks"
    """
    s = _VOWELS.sub("", value.lower())
    s = s.replace("c", "k")
    s = s.replace("ph", "f")
    s = s.replace("ck", "k")
    s = s.replace("gh", "")
    s = s.replace("wh", "w")
    s = s.replace("qu", "kw")
    s = s.replace("x", "ks")
    return _DOUBLED.sub(r"\1", s)


def soundex_code(value: str) -> str:
    """Return a 4-character Soundex-like code.

    The first letter is mapped onto a sound group letter; the following
    consonants become digits. A digit equal to the previous one is skipped
    unless a vowel (or h/w/y) sat between them. Always 4 characters long.
    """
    s = value.lower()
    if not s:
        return "0" * SOUNDEX_LENGTH

    first = s[0]
    if first in "ckq":
        first = "k"
    elif first in "fvp":
        first = "f"
    elif first in "sz":
        first = "s"
    elif first in "gj":
        first = "j"

    code = first
    last_digit = SOUNDEX_DIGITS.get(s[0], "")

    for char in s[1:]:
        if len(code) >= SOUNDEX_LENGTH:
            break
        if char in SOUNDEX_SEPARATORS:
            last_digit = ""
            continue
        digit = SOUNDEX_DIGITS.get(char, "")
        if digit and digit != last_digit:
            code += digit
            last_digit = digit

    return (code + "000")[:SOUNDEX_LENGTH]


def apply_phonetic_substitutions(value: str) -> str:
    """Rewrite common transcription confusions (ph→f, tion→shun, ...)."""
    for pattern, replacement in PHONETIC_SUBSTITUTIONS:
        value = pattern.sub(replacement, value)
    return value


def phonetic_similarity(a: str, b: str) -> float:
    """Score two strings by how alike they sound.

    Equal after substitutions scores 0.85; otherwise the Soundex-like codes
    are compared (full 0.8, 3-char prefix 0.7, 2-char prefix 0.6). With no
    code agreement the edit ratio of the substituted strings is returned.
    """
    substituted_a = apply_phonetic_substitutions(a)
    substituted_b = apply_phonetic_substitutions(b)
    if substituted_a == substituted_b:
        return PHONETIC_EQUAL_SCORE

    code_a = soundex_code(a)
    code_b = soundex_code(b)
    if code_a == code_b:
        return SOUNDEX_FULL_SCORE
    if code_a[:3] == code_b[:3]:
        return SOUNDEX_PREFIX3_SCORE
    if code_a[:2] == code_b[:2]:
        return SOUNDEX_PREFIX2_SCORE

    return edit_similarity(substituted_a, substituted_b)


def skeleton_similarity(a: str, b: str) -> float:
    """Compare consonant skeletons: equal 0.75, containment 0.65, else 0."""
    skeleton_a = consonant_skeleton(a)
    skeleton_b = consonant_skeleton(b)
    if skeleton_a == skeleton_b:
        return SKELETON_EQUAL_SCORE
    # Added or dropped sounds
    if skeleton_a in skeleton_b or skeleton_b in skeleton_a:
        return SKELETON_CONTAINS_SCORE
    return 0.0


def word_similarity(a: str, b: str) -> float:
    """Best cross-word edit ratio above 0.7, weighted by 0.8."""
    best = 0.0
    for word_a in a.split():
        for word_b in b.split():
            ratio = edit_similarity(word_a, word_b)
            if ratio > WORD_MATCH_MIN_RATIO:
                best = max(best, ratio * WORD_MATCH_WEIGHT)
    return best


@dataclass(frozen=True)
class SimilarityBreakdown:
    """Per-signal contributions to a similarity score."""

    tier: str  # "exact", "contains" or "fuzzy"
    total: float
    edit: float = 0.0
    phonetic: float = 0.0
    skeleton: float = 0.0
    word: float = 0.0
    first_letter_bonus: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "tier": self.tier,
            "total": self.total,
            "edit": self.edit,
            "phonetic": self.phonetic,
            "skeleton": self.skeleton,
            "word": self.word,
            "first_letter_bonus": self.first_letter_bonus,
        }


def explain_similarity(a: str, b: str) -> SimilarityBreakdown:
    """Score two strings and keep every signal for display."""
    s1 = normalize_text(a)
    s2 = normalize_text(b)

    if s1 == s2:
        return SimilarityBreakdown(tier="exact", total=EXACT_SCORE)
    if s1 in s2 or s2 in s1:
        return SimilarityBreakdown(tier="contains", total=CONTAINS_SCORE)

    bonus = (
        FIRST_LETTER_BONUS if normalize_first_char(s1[0]) == normalize_first_char(s2[0]) else 0.0
    )
    edit = edit_similarity(s1, s2)
    phonetic = phonetic_similarity(s1, s2)
    skeleton = skeleton_similarity(s1, s2)
    word = word_similarity(s1, s2)

    total = min(1.0, max(edit, phonetic, skeleton, word) + bonus)
    return SimilarityBreakdown(
        tier="fuzzy",
        total=max(0.0, total),
        edit=edit,
        phonetic=phonetic,
        skeleton=skeleton,
        word=word,
        first_letter_bonus=bonus,
    )


def calculate_similarity(a: str, b: str) -> float:
    """Similarity of two free-text strings in [0, 1] (1.0 = identical).

    Args:
        a: First string (e.g., the spoken query)
        b: Second string (e.g., a client name)

    Returns:
        Similarity score from 0 (no match) to 1 (exact match)
    """
    return explain_similarity(a, b).total
