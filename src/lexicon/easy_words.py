# src/lexicon/easy_words.py — v1
"""EasyWordLexicon — the set of simple (A1/A2) normalized word forms.

The lexicon is opaque to the rest of the system: callers only ask
membership questions through `accepts()`. Regular inflections are
matched by suffix stripping, irregular forms must be listed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

BUNDLED_WORDS_PATH = Path(__file__).parent / "data" / "easy_words.txt"

# (suffix, minimum stem length beyond the suffix)
_SUFFIX_RULES: tuple[tuple[str, int], ...] = (
    ("ing", 3),
    ("ed", 2),
    ("es", 2),
    ("s", 1),
    ("er", 2),
    ("est", 3),
    ("ly", 2),
)
# Suffixes whose stem may have lost a trailing "e" (close -> closed).
_E_INSERTION = frozenset({"ing", "ed", "es"})


def normalize_token(token: str) -> str:
    """Lowercase, fix mis-encoded apostrophes, strip edge apostrophes."""
    return token.lower().replace("â€™", "'").replace("’", "'").strip("'")


class EasyWordLexicon:
    """Membership queries over easy word forms, with variant matching."""

    def __init__(self, words: Iterable[str]) -> None:
        self._words = frozenset(
            normalize_token(w) for w in words if w and normalize_token(w)
        )

    @classmethod
    def load(cls, path: Path | None = None) -> EasyWordLexicon:
        """Load a word list file (one word per line, # comments).

        Args:
            path: Custom list. The bundled list is used when None.
        """
        if path is None:
            text = BUNDLED_WORDS_PATH.read_text(encoding="utf-8")
            source = "bundled"
        else:
            text = Path(path).expanduser().read_text(encoding="utf-8")
            source = str(path)

        words = [
            line.strip()
            for line in text.splitlines()
            if line.strip() and not line.lstrip().startswith("#")
        ]
        lexicon = cls(words)
        logger.debug("Loaded %d easy words from %s", len(lexicon), source)
        return lexicon

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and normalize_token(word) in self._words

    def __len__(self) -> int:
        return len(self._words)

    def accepts(self, token: str) -> bool:
        """True if the token is easy: listed, a possessive, or an inflection.

        Empty tokens are accepted (nothing to flag).
        """
        lower = normalize_token(token)
        if not lower:
            return True
        if lower in self._words:
            return True
        if lower.endswith("'s") and lower[:-2] in self._words:
            return True

        for suffix, min_stem in _SUFFIX_RULES:
            if lower.endswith(suffix) and len(lower) > len(suffix) + min_stem:
                stem = lower[: -len(suffix)]
                if stem in self._words:
                    return True
                if suffix in _E_INSERTION and f"{stem}e" in self._words:
                    return True
        return False
