"""
Query/summary tokenizer.

Responsibilities:
- Split free text into lowercase tokens over a fixed word alphabet
  (ASCII letters and digits, Hangul syllables, Hangul compatibility jamo).

Non-Responsibilities:
- No stemming, stop words or deduplication.

Invariant:
Only runs of two or more word characters are emitted, and no token
crosses a non-word character.
"""

from typing import Iterator, List

MIN_TOKEN_LEN = 2


def is_word_char(ch: str) -> bool:
    if ch.isascii():
        return ch.isalnum()
    cp = ord(ch)
    return (
        0xAC00 <= cp <= 0xD7A3  # Hangul syllables
        or 0x3131 <= cp <= 0x314E  # compatibility jamo, consonants
        or 0x314F <= cp <= 0x3163  # compatibility jamo, vowels
    )


def iter_tokens(text: str) -> Iterator[str]:
    run: List[str] = []
    for ch in text or "":
        if is_word_char(ch):
            run.append(ch)
            continue
        if len(run) >= MIN_TOKEN_LEN:
            yield "".join(run).lower()
        run = []
    if len(run) >= MIN_TOKEN_LEN:
        yield "".join(run).lower()


def tokenize(text: str) -> List[str]:
    return list(iter_tokens(text))
