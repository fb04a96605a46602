"""Output length budgeting for size-limited channels."""

from __future__ import annotations

ELLIPSIS = "..."
SOURCE_HEADER = "\n\n[Sources]\n"
SOURCE_TITLE_LENGTH = 50


def truncate_text(text: str, max_length: int, marker: str = ELLIPSIS) -> str:
    """Cut ``text`` so the result, marker included, is at most ``max_length`` chars."""
    if len(text) <= max_length:
        return text
    if max_length <= len(marker):
        return marker[:max(max_length, 0)]
    return text[: max_length - len(marker)] + marker


def source_title(content: str) -> str:
    title = content.strip().replace("\n", " ")
    if len(title) > SOURCE_TITLE_LENGTH:
        return title[:SOURCE_TITLE_LENGTH] + ELLIPSIS
    return title


def _source_section(titles: list[str]) -> str:
    if not titles:
        return ""
    return SOURCE_HEADER + "\n".join(f"- {t}" for t in titles)


def compose_with_sources(
    answer: str,
    titles: list[str],
    max_length: int,
    max_sources: int = 3,
) -> str:
    """Join an answer and its source list inside ``max_length`` characters.

    Sources are dropped whole, last first, until the full answer fits next to
    them; a source line is never cut. Only when no source is left is the
    answer itself truncated.
    """
    kept = list(titles[:max_sources])
    while kept:
        text = answer + _source_section(kept)
        if len(text) <= max_length:
            return text
        kept.pop()
    return truncate_text(answer, max_length)
