"""Levenshtein distance and normalized similarity."""
import pytest

from datesync.pipelines.similarity import levenshtein, similarity


def test_levenshtein_classic():
    assert levenshtein("kitten", "sitting") == 3


def test_levenshtein_counts_code_points():
    # one Hangul syllable is one edit, not three UTF-8 bytes
    assert levenshtein("독서모임", "독서모음") == 1


@pytest.mark.parametrize("text", ["", "a", "인문학 아카데미"])
def test_reflexive(text):
    assert similarity(text, text) == 1.0


def test_empty_strings():
    assert similarity("", "") == 1.0
    assert similarity("abc", "") == 0.0
    assert similarity("", "abc") == 0.0


@pytest.mark.parametrize(
    "a, b",
    [("독서모임", "독서모임 a반"), ("kitten", "sitting"), ("인문학 아카데미", "인문학 세미나")],
)
def test_symmetric_and_bounded(a, b):
    assert similarity(a, b) == similarity(b, a)
    assert 0.0 <= similarity(a, b) <= 1.0


def test_known_values():
    assert similarity("독서모임", "독서모임 a반") == pytest.approx(4 / 7)
    assert similarity("인문학 아카데미", "인문학 세미나") == pytest.approx(0.5)


def test_monotone_in_distance():
    base = "program"
    closer = similarity(base, "programs")
    farther = similarity(base, "programme")
    assert levenshtein(base, "programs") < levenshtein(base, "programme")
    assert closer > farther


@pytest.mark.parametrize(
    "a, b, c",
    [
        ("독서", "독서모임", "독서모임 a반"),
        ("인문", "인문학", "인문학 아카데미"),
        ("ab", "abc", "abcdef"),
    ],
)
def test_longer_extension_scores_no_higher(a, b, c):
    # b extends a, and c extends b
    assert similarity(a, c) <= similarity(a, b)
