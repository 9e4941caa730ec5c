from __future__ import annotations

import re
import unicodedata

from rapidfuzz.distance import JaroWinkler


_WS_RE = re.compile(r"\s+")
_PUNCT_RE = re.compile(r"[^\w\s]")


def normalize_text(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def strip_diacritics(text: str) -> str:
    # NFD splits ș/ț/ă/â/î into base letter + combining mark
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold(text: str) -> str:
    """Lower-case and diacritic-free, used for keyword matching."""

    return strip_diacritics((text or "").lower())


def normalize_title(title: str, *, fold_diacritics: bool = True) -> str:
    t = (title or "").lower()
    if fold_diacritics:
        t = strip_diacritics(t)
    t = _PUNCT_RE.sub(" ", t)
    return normalize_text(t)


def title_similarity(a: str, b: str) -> float:
    """Jaro-Winkler similarity in [0, 1] of two already-normalized titles."""

    if not a and not b:
        return 1.0
    return float(JaroWinkler.similarity(a, b))
