import pytest

from services.ai.sanitizer import clamp_int, clean_text, normalize_priority


def test_clean_text_collapses_whitespace_and_adds_period():
    assert clean_text("  Meet   the\nteam  ", 120) == "Meet the team."


def test_clean_text_keeps_existing_terminal_punctuation():
    assert clean_text("Ready?", 120) == "Ready?"
    assert clean_text("Ship it!", 120) == "Ship it!"


def test_clean_text_translates_curly_quotes():
    assert clean_text("“Hello” it’s fine", 120) == "\"Hello\" it's fine."


def test_clean_text_strips_glued_fragments():
    assert clean_text("The user'end-user wants it", 120) == "The user wants it."
    assert clean_text("Review it'ty now", 120) == "Review it now."


def test_clean_text_cuts_on_word_boundary():
    text = clean_text("word " * 50, 30)
    assert text == "word word word word word word."
    assert len(text) <= 31


def test_clean_text_hard_cuts_without_nearby_space():
    assert clean_text("a" * 50, 30) == "a" * 30 + "."


@pytest.mark.parametrize(
    "raw",
    [
        "x" * 25 + " abcd more",
        "a" * 50,
        "word " * 50,
        "Short sentence!",
        "y" * 30 + ".",
    ],
)
def test_clean_text_is_idempotent(raw):
    once = clean_text(raw, 30)
    assert clean_text(once, 30) == once


def test_clean_text_keeps_bounded_text_with_terminal():
    assert clean_text("x" * 25 + " abcd more", 30) == "x" * 25 + " abcd."
    assert clean_text("y" * 30 + ".", 30) == "y" * 30 + "."


def test_clean_text_handles_none_and_empty():
    assert clean_text(None, 50) == ""
    assert clean_text("   ", 50) == ""


def test_clean_text_stringifies_non_strings():
    assert clean_text(42, 50) == "42."


def test_clamp_int_truncates_and_clamps():
    assert clamp_int(45.9, 10, 90) == 45
    assert clamp_int("75", 10, 90) == 75
    assert clamp_int(5, 10, 90) == 10
    assert clamp_int(500, 10, 90) == 90


def test_clamp_int_non_numbers_map_to_low():
    assert clamp_int("soon", 10, 90) == 10
    assert clamp_int(None, 10, 90) == 10
    assert clamp_int(float("nan"), 10, 90) == 10
    assert clamp_int(float("inf"), 3, 10) == 3


def test_normalize_priority():
    assert normalize_priority(" HIGH ") == "high"
    assert normalize_priority("low") == "low"
    assert normalize_priority("urgent") == "medium"
    assert normalize_priority(None) == "medium"
