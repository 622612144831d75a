"""
Split document text into bounded-length segments for embedding.

Splitting is purely positional. Input parts are laid end to end and cut
every ``max_chars`` characters, so a short label and the start of the body
share the first segment.
"""

# Approximates the provider's 8192-token input limit
MAX_CHUNK_CHARS = 2000


def chunk_segments(parts: list[str], max_chars: int = MAX_CHUNK_CHARS) -> list[str]:
    """
    Pack an ordered list of text parts into segments of at most max_chars.

    A part longer than the room left in the current segment is split; its
    remainder continues in the next segment together with whatever follows.
    Empty parts contribute nothing.

    Args:
        parts: Text parts in order (e.g. [label, "\\n", body])
        max_chars: Maximum segment length in characters

    Returns:
        List of non-empty segments; empty when all parts are empty
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    segments: list[str] = []
    pending: list[str] = []
    room = max_chars

    for part in parts:
        start = 0
        while len(part) - start > room:
            pending.append(part[start:start + room])
            segments.append("".join(pending))
            pending.clear()
            start += room
            room = max_chars
        tail = len(part) - start
        if tail > 0:
            pending.append(part[start:])
            room -= tail

    if pending:
        segments.append("".join(pending))

    return segments


def document_parts(text: str, label: str | None = None) -> list[str]:
    """Parts for a document: the label as a leading virtual line, then the body."""
    if label:
        return [label, "\n", text]
    return [text]
