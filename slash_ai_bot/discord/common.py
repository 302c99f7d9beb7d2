from __future__ import annotations

MESSAGE_CHAR_LIMIT = 1900


def chunk_text(text: str, limit: int = MESSAGE_CHAR_LIMIT) -> list[str]:
    """Split ``text`` into segments of at most ``limit`` characters.

    Lines are packed greedily and only a line that is itself longer than
    ``limit`` gets hard-sliced; its tail seeds the next segment. Text that
    already fits comes back untouched as a single segment.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")
    if len(text) <= limit:
        return [text]

    parts: list[str] = []
    current = ""
    for line in text.split("\n"):
        if len(current) + len(line) + 1 > limit:
            if current.strip():
                parts.append(current.strip())
            if len(line) > limit:
                remaining = line
                while len(remaining) > limit:
                    piece = remaining[:limit]
                    # Discord rejects blank message content.
                    if piece.strip():
                        parts.append(piece)
                    remaining = remaining[limit:]
                current = remaining
            else:
                current = line
        elif current:
            current = f"{current}\n{line}"
        else:
            current = line

    if current.strip():
        parts.append(current.strip())

    # Whitespace-only input collapses to nothing above.
    return parts or [text[:limit]]
