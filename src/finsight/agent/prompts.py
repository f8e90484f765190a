"""Prompt templates for the financial analyst agent.

Every message the reasoning model sees is built here.  Keeping prompts in
one place makes them easy to audit and version.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from finsight.agent.citations import CHUNK_TEXT_KEY, citation_token

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from finsight.agent.state import ChatTurn
    from finsight.retrieval.models import RetrievedDocument

NOT_FOUND_ANSWER = "The answer could not be found"

EMPTY_KNOWLEDGE_BASE_MESSAGE = (
    "The knowledge database is empty. Please load documents first using the "
    '"Load DB" button in the sidebar.'
)

TOOL_LOOP_EXCEEDED_MESSAGE = (
    "I could not complete this request: the data tools were called too many "
    "times without reaching an answer. Please rephrase or narrow the question."
)

NO_RESPONSE_MESSAGE = "No response generated"

# ── 1. System prompt ──────────────────────────────────────────────────

SYSTEM_PROMPT = f"""\
You are a financial analyst assistant specialized in global economic outlook.

Rules:
1. Answer ONLY based on the provided context from retrieved documents.
2. Do not use any external knowledge or speculation.
3. If the context does not contain enough information to answer the question, respond with: "{NOT_FOUND_ANSWER}"
4. Always cite your sources inline using the exact expected citation format provided for each source (e.g., [filename.pdf, p.123])
5. Be concise and professional in your responses.
6. Do not speculate or generate information not grounded in retrieved context.
7. Use the available tools (get_real_gdp_growth, get_exchange_rate, get_cpi) when the user asks for specific data points about GDP growth, exchange rates, or inflation."""

# ── 2. Grounding prompt ───────────────────────────────────────────────

USER_PROMPT_TEMPLATE = f"""\
Context from knowledge base:

{{context}}

Question: {{question}}

Instructions:
- Answer the question using ONLY the information from the context above
- Include inline citations in the EXACT format specified as "Expected_citation" for each source
- If the context doesn't contain enough information, respond with: "{NOT_FOUND_ANSWER}"
- Be concise and factual"""

CONTEXT_SEPARATOR = "\n\n---\n"


def format_context_block(index: int, document: RetrievedDocument, token: str) -> str:
    """One numbered ``Source`` block of the grounding prompt."""
    metadata = document.metadata
    title = metadata.get("data_source_name") or metadata.get("data_source_id") or "Unknown"
    return (
        f"Source {index}:\n"
        f"Title: {title}\n"
        f"URL: {metadata.get('url') or 'N/A'}\n"
        f"Expected_citation: {token}\n"
        f"Excerpt: {document.content.strip()}"
    )


def build_grounding_prompt(
    question: str,
    documents: Sequence[RetrievedDocument],
) -> tuple[str, dict[str, dict[str, Any]]]:
    """Build the user prompt and the per-request citation map.

    Returns
    -------
    tuple[str, dict]
        The prompt text and a mapping ``citation token → metadata`` where
        each metadata dict also carries the chunk text under
        ``chunk_text``.  Two chunks with the same token share one entry;
        the later chunk wins.
    """
    if not documents:
        return f"Question: {question}", {}

    blocks: list[str] = []
    citation_map: dict[str, dict[str, Any]] = {}
    for i, doc in enumerate(documents, 1):
        token = citation_token(doc.metadata.get("file_name"), doc.metadata.get("page_number"))
        citation_map[token] = {**doc.metadata, CHUNK_TEXT_KEY: doc.content}
        blocks.append(format_context_block(i, doc, token))

    prompt = USER_PROMPT_TEMPLATE.format(
        context=CONTEXT_SEPARATOR.join(blocks),
        question=question,
    )
    return prompt, citation_map


def history_to_messages(history: Sequence[ChatTurn]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for turn in history:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    return messages


def build_chat_messages(prompt: str, history: Sequence[ChatTurn]) -> list[BaseMessage]:
    """System prompt, prior turns, then the grounding prompt."""
    return [
        SystemMessage(content=SYSTEM_PROMPT),
        *history_to_messages(history),
        HumanMessage(content=prompt),
    ]
