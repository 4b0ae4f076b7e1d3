"""Tokenizing and keyword helpers shared by classification and retrieval."""

import re
from functools import lru_cache
from typing import Iterable, List

from nltk.stem.porter import PorterStemmer

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_TAG_RE = re.compile(r"<[^>]+>")
_stemmer = PorterStemmer()


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall((text or "").lower())


@lru_cache(maxsize=20000)
def stem(token: str) -> str:
    return _stemmer.stem(token)


def stem_tokens(tokens: Iterable[str]) -> List[str]:
    return [stem(token) for token in tokens]


def strip_html(text: str) -> str:
    return _TAG_RE.sub(" ", text or "")


@lru_cache(maxsize=4096)
def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword.lower()) + r"(?![a-z0-9])")


def contains_keyword(text: str, keyword: str) -> bool:
    """Match on word boundaries so "add" does not fire inside "address"."""
    return _keyword_pattern(keyword).search(text) is not None


def count_keywords(text: str, keywords: Iterable[str]) -> List[str]:
    """Return the keywords present in already-lowercased text."""
    return [keyword for keyword in keywords if contains_keyword(text, keyword)]


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
