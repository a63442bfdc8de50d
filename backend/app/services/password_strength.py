"""Password strength scoring.

A pure, deterministic point model shared by the live validation endpoint and
by server-side enforcement in the change, reset and registration flows.
"""
import re
from dataclasses import asdict, dataclass, field

MIN_LENGTH = 8
MAX_LENGTH = 128
VALID_SCORE_THRESHOLD = 50

SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"
_SPECIAL_RE = re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]")
_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")
_REPEAT_RE = re.compile(r"(.)\1{2,}")

COMMON_WEAK_PASSWORDS = frozenset(
    {
        "password",
        "123456",
        "12345678",
        "qwerty",
        "abc123",
        "password123",
        "123456789",
        "welcome",
        "admin",
        "letmein",
    }
)

SEQUENCES = (
    "abcdefghijklmnopqrstuvwxyz",
    "0123456789",
    "qwertyuiopasdfghjklzxcvbnm",
)
_SEQUENCE_RUNS = frozenset(seq[i : i + 3] for seq in SEQUENCES for i in range(len(seq) - 2))

STRENGTH_TIERS = (
    (80, "very_strong"),
    (60, "strong"),
    (40, "medium"),
    (20, "weak"),
)

STRENGTH_LABELS = {
    "very_weak": "Very weak",
    "weak": "Weak",
    "medium": "Medium",
    "strong": "Strong",
    "very_strong": "Very strong",
}

STRENGTH_COLORS = {
    "very_weak": "#ff4d4f",
    "weak": "#ff7875",
    "medium": "#faad14",
    "strong": "#52c41a",
    "very_strong": "#389e0d",
}


@dataclass(frozen=True)
class Requirements:
    length: bool = False
    uppercase: bool = False
    lowercase: bool = False
    number: bool = False
    special: bool = False


@dataclass(frozen=True)
class StrengthReport:
    is_valid: bool
    strength: str
    score: int
    requirements: Requirements
    suggestions: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["suggestions"] = list(self.suggestions)
        return data


def has_sequential_characters(password: str) -> bool:
    lowered = password.lower()
    return any(lowered[i : i + 3] in _SEQUENCE_RUNS for i in range(len(lowered) - 2))


def strength_tier(score: int) -> str:
    for floor, name in STRENGTH_TIERS:
        if score >= floor:
            return name
    return "very_weak"


def score_password(password: str, username: str | None = None, email: str | None = None) -> StrengthReport:
    score = 0
    suggestions: list[str] = []

    length_ok = MIN_LENGTH <= len(password) <= MAX_LENGTH
    if length_ok:
        score += 20
    elif len(password) < MIN_LENGTH:
        suggestions.append(f"Use at least {MIN_LENGTH} characters")
    else:
        suggestions.append(f"Use no more than {MAX_LENGTH} characters")

    uppercase = bool(_UPPER_RE.search(password))
    if uppercase:
        score += 15
    else:
        suggestions.append("Add an uppercase letter")

    lowercase = bool(_LOWER_RE.search(password))
    if lowercase:
        score += 15
    else:
        suggestions.append("Add a lowercase letter")

    number = bool(_DIGIT_RE.search(password))
    if number:
        score += 15
    else:
        suggestions.append("Add a number")

    special = bool(_SPECIAL_RE.search(password))
    if special:
        score += 15

    lowered = password.lower()
    hint_name = (username or "").lower()
    hint_local = (email or "").split("@")[0].lower()

    if hint_name and hint_name in lowered:
        score -= 20
        suggestions.append("Do not include your username")

    if hint_local and hint_local in lowered:
        score -= 20
        suggestions.append("Do not include the name part of your email address")

    if lowered in COMMON_WEAK_PASSWORDS:
        score -= 30
        suggestions.append("Avoid common passwords")

    if _REPEAT_RE.search(password):
        score -= 10
        suggestions.append("Avoid repeating the same character three times in a row")

    if has_sequential_characters(password):
        score -= 10
        suggestions.append("Avoid sequences such as 'abc', '123' or 'qwe'")

    if len(password) >= 12:
        score += 10
    if len(password) >= 16:
        score += 10

    score = max(0, min(100, score))
    requirements = Requirements(
        length=length_ok,
        uppercase=uppercase,
        lowercase=lowercase,
        number=number,
        special=special,
    )
    basic = length_ok and uppercase and lowercase and number

    return StrengthReport(
        is_valid=basic and score >= VALID_SCORE_THRESHOLD,
        strength=strength_tier(score),
        score=score,
        requirements=requirements,
        suggestions=tuple(suggestions),
    )
