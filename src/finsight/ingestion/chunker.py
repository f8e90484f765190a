"""Text chunking strategies."""

from __future__ import annotations

from typing import Any

from langchain_text_splitters import TextSplitter


def chunk_text(text: str, chunk_size: int = 1000, chunk_overlap: int = 200) -> list[str]:
    """Split *text* into overlapping windows.

    Parameters
    ----------
    text:
        Full extracted text of one file.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of characters shared by consecutive chunks.

    Returns
    -------
    list[str]
        Chunks in document order.
    """
    if chunk_overlap >= chunk_size:
        raise ValueError(f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})")
    stride = chunk_size - chunk_overlap
    chunks: list[str] = []
    start = 0
    while start < len(text):
        chunks.append(text[start : start + chunk_size])
        start += stride
    return chunks


class FixedWindowTextSplitter(TextSplitter):
    """Split text into fixed-size, overlapping character windows.

    Window *i* starts at ``i * (chunk_size - chunk_overlap)`` and is
    ``chunk_size`` characters long; windows are emitted for every start
    offset inside the text and the last ones are truncated at the end of the
    text, never padded.  Unlike the recursive splitter, boundaries do not
    move to separators, so the stride between windows is exact.
    """

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200, **kwargs: Any) -> None:
        if chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})"
            )
        kwargs.setdefault("strip_whitespace", False)
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap, **kwargs)

    @property
    def stride(self) -> int:
        return self._chunk_size - self._chunk_overlap

    def split_text(self, text: str) -> list[str]:
        return chunk_text(text, chunk_size=self._chunk_size, chunk_overlap=self._chunk_overlap)
