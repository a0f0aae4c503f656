"""Tests for search tokenization."""

from ushin.tokens import tokenize


class TestTokenize:
    def test_lowercases_and_splits(self):
        assert tokenize("Cats bring me joy") == ["cats", "bring", "me", "joy"]

    def test_punctuation_insensitive(self):
        assert tokenize("Hello, world!") == ["hello", "world"]
        assert set(tokenize("Hello, world!")) == set(tokenize("hello world"))

    def test_deduplicates_in_first_seen_order(self):
        assert tokenize("the cat and THE dog and the cat") == ["the", "cat", "and", "dog"]

    def test_drops_empty_fragments(self):
        assert tokenize("  ...leading and trailing!!  ") == ["leading", "and", "trailing"]

    def test_empty_and_none(self):
        assert tokenize("") == []
        assert tokenize(None) == []
        assert tokenize("?!, ...") == []

    def test_underscore_and_digits_are_word_characters(self):
        assert tokenize("snake_case v2") == ["snake_case", "v2"]

    def test_unicode_words(self):
        assert tokenize("Café crème") == ["café", "crème"]
