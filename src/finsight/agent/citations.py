"""Citation tokens — how answers point back at retrieved chunks.

A token has the exact form ``[<file_name>, p.<page_number>]``.  The prompt
hands the model one token per retrieved chunk; after generation the answer
is scanned for tokens and each one is resolved against that per-request
map.  File names must not contain a comma or ``]``.
"""

from __future__ import annotations

import re
from typing import Any

from finsight.retrieval.models import Citation

CITATION_PATTERN = re.compile(r"\[([^,\]]+),\s*p\.(\d+)\]")

CHUNK_TEXT_KEY = "chunk_text"


def citation_token(file_name: str | None, page_number: int | str | None) -> str:
    return f"[{file_name or 'Unknown'}, p.{page_number or 0}]"


def _stringify(value: Any) -> str:
    return "" if value is None else str(value)


def extract_citations(answer: str, citation_map: dict[str, dict[str, Any]]) -> list[Citation]:
    """Resolve the tokens used in *answer*, left to right.

    Repeated tokens are kept once, at their first occurrence.  Tokens with
    no entry in *citation_map* (invented by the model) are dropped.
    """
    citations: list[Citation] = []
    seen: set[str] = set()

    for match in CITATION_PATTERN.finditer(answer):
        label = match.group(0)
        if label in seen:
            continue
        seen.add(label)

        details = citation_map.get(label)
        if details is None:
            continue
        metadata = {k: _stringify(v) for k, v in details.items() if k != CHUNK_TEXT_KEY}
        citations.append(
            Citation(
                label=label,
                metadata=metadata,
                chunk_text=_stringify(details.get(CHUNK_TEXT_KEY)),
            )
        )
    return citations
