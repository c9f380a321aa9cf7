import re
from typing import Iterable

DEFAULT_WORDS = ('badword1', 'badword2', 'badword3')


class ProfanityFilter:
    """Masks listed words (case-insensitive, anywhere in the text) with asterisks."""

    def __init__(self, words: Iterable[str] = DEFAULT_WORDS):
        self.words = [w for w in words if w]
        self._patterns = [(re.compile(re.escape(w), re.IGNORECASE), '*' * len(w)) for w in self.words]

    def filter(self, text: str) -> str:
        for pattern, mask in self._patterns:
            text = pattern.sub(mask, text)
        return text

    def has_profanity(self, text: str) -> bool:
        lowered = text.lower()
        return any(w.lower() in lowered for w in self.words)

    __call__ = filter
