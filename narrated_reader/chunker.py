"""Split long text into provider-sized chunks at sentence, then word, boundaries."""

import re

from narrated_reader.constants import MAX_PROVIDER_CHARS

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


def _pack_words(words: list[str], max_chars: int) -> list[str]:
    """Greedily pack words into chunks of at most max_chars.

    A word longer than max_chars becomes its own chunk, untouched.
    """
    chunks = []
    current = ""

    for word in words:
        if len(word) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(word)
            continue

        if current and len(current) + len(word) + 1 > max_chars:
            chunks.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word

    if current:
        chunks.append(current)

    return chunks


def split_sentences(text: str) -> list[str]:
    """Split text on . ! ? followed by whitespace, collapsing inner whitespace."""
    sentences = []
    for raw in _SENTENCE_RE.split(text.strip()):
        sentence = " ".join(raw.split())
        if sentence:
            sentences.append(sentence)
    return sentences


def split_text(text: str, max_chars: int = MAX_PROVIDER_CHARS) -> list[str]:
    """Split text into ordered, non-empty chunks of at most max_chars.

    Sentences are packed greedily; a sentence that alone exceeds the limit is
    packed word by word. Text already within the limit comes back as a single
    trimmed chunk. Empty input yields an empty list.
    """
    if max_chars < 1:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    text = text.strip()
    if not text:
        return []
    if len(text) <= max_chars:
        return [text]

    chunks = []
    current = ""

    for sentence in split_sentences(text):
        if len(sentence) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(_pack_words(sentence.split(), max_chars))
            continue

        if current and len(current) + len(sentence) + 1 > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence

    if current:
        chunks.append(current)

    return chunks
