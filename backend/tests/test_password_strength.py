from app.services.password_strength import (
    MAX_LENGTH,
    has_sequential_characters,
    score_password,
    strength_tier,
)


def test_minimal_password_meeting_all_categories_is_valid():
    report = score_password("Abcdefg1")

    assert report.is_valid
    assert report.requirements.length
    assert report.requirements.uppercase
    assert report.requirements.lowercase
    assert report.requirements.number
    assert not report.requirements.special
    # 20 + 3 * 15, minus the "abc" sequence penalty.
    assert report.score == 55


def test_common_password_is_rejected():
    report = score_password("password")

    assert not report.is_valid
    assert "Avoid common passwords" in report.suggestions
    # Denylist and the "pas" keyboard run both apply; the total is clamped at zero.
    assert report.score == 0
    assert report.strength == "very_weak"


def test_denylist_match_ignores_case():
    assert "Avoid common passwords" in score_password("PassWord123").suggestions


def test_username_hint_lowers_score():
    plain = score_password("Alice#Garden42")
    hinted = score_password("Alice#Garden42", username="alice")

    assert hinted.score < plain.score
    assert plain.score - hinted.score == 20
    assert "Do not include your username" in hinted.suggestions


def test_email_local_part_hint_lowers_score():
    plain = score_password("Garden#Party42")
    hinted = score_password("Garden#Party42", email="garden@example.com")

    assert plain.score - hinted.score == 20


def test_scoring_is_deterministic():
    assert score_password("Tr0ub4dor&3", "bob", "bob@example.com") == score_password(
        "Tr0ub4dor&3", "bob", "bob@example.com"
    )


def test_repeated_characters_are_penalised():
    report = score_password("Paaass#word9")
    assert "Avoid repeating the same character three times in a row" in report.suggestions


def test_sequences_across_all_keyboards():
    assert has_sequential_characters("xxXYZxx")
    assert has_sequential_characters("pin7890")
    assert has_sequential_characters("QWErty")
    assert not has_sequential_characters("a1b2c3")


def test_length_bonuses():
    assert score_password("Kp7#mWz2").score == 80
    assert score_password("Kp7#mWz2Rt9!").score == 90
    assert score_password("Kp7#mWz2Rt9!Lv4$").score == 100


def test_length_bounds():
    short = score_password("Ab1#")
    assert not short.requirements.length
    assert not short.is_valid

    too_long = score_password("Ab1#" + "x" * MAX_LENGTH)
    assert not too_long.requirements.length
    assert not too_long.is_valid
    assert 0 <= too_long.score <= 100


def test_empty_password_scores_zero():
    report = score_password("")
    assert report.score == 0
    assert report.strength == "very_weak"


def test_categories_are_required_even_with_high_score():
    # Long, special and lowercase only: score clears the threshold but digits are missing.
    report = score_password("correct#horse#battery#staple")
    assert report.score >= 50
    assert not report.is_valid


def test_strength_tiers():
    assert strength_tier(100) == "very_strong"
    assert strength_tier(80) == "very_strong"
    assert strength_tier(79) == "strong"
    assert strength_tier(60) == "strong"
    assert strength_tier(59) == "medium"
    assert strength_tier(40) == "medium"
    assert strength_tier(20) == "weak"
    assert strength_tier(19) == "very_weak"


def test_to_dict_is_json_friendly():
    data = score_password("abc").to_dict()

    assert isinstance(data["suggestions"], list)
    assert set(data["requirements"]) == {"length", "uppercase", "lowercase", "number", "special"}
    assert data["is_valid"] is False
