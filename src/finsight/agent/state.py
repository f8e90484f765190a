"""Agent state definition — shared across all graph nodes.

The state is the *single source of truth* that flows through every node
in the LangGraph agent.  Each field is documented so that new nodes can
be added without guessing what data is available.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, TypedDict

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages
from pydantic import BaseModel, Field

from finsight.retrieval.models import Citation, RetrievedDocument


# ---------------------------------------------------------------------------
# Public request / response models
# ---------------------------------------------------------------------------


class ChatTurn(BaseModel):
    """One prior turn of the conversation."""

    role: Literal["user", "assistant"]
    content: str


class AgentAnswer(BaseModel):
    """Final answer plus the citations the model actually used."""

    text: str
    citations: list[Citation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Trace records
# ---------------------------------------------------------------------------


@dataclass
class ToolCallRecord:
    """Record of a single tool invocation.

    Attributes
    ----------
    call_id:
        Id the model assigned to the call; the tool result is keyed to it.
    tool_name:
        Which tool was requested (e.g. ``"get_cpi"``).
    tool_input:
        The arguments passed to the tool.
    result:
        Text returned to the model.
    """

    call_id: str
    tool_name: str
    tool_input: dict[str, Any] = field(default_factory=dict)
    result: str = ""


def _append_list(existing: list[Any], new: list[Any]) -> list[Any]:
    """Reducer that appends *new* items to the *existing* list."""
    return existing + new


# ---------------------------------------------------------------------------
# Agent state
# ---------------------------------------------------------------------------


class AgentState(TypedDict):
    """Typed state that flows through the LangGraph agent.

    Attributes
    ----------
    messages:
        Transcript sent to the reasoning model (system prompt, prior turns,
        grounding prompt, model replies, tool results), managed by
        LangGraph's ``add_messages`` reducer.
    query:
        The user's current (sanitised) question.
    history:
        Prior user / assistant turns.
    documents:
        Passages retrieved for the question, best first.
    citation_map:
        Citation token → chunk metadata plus ``chunk_text``; lives only for
        this request.
    knowledge_base_empty:
        Set by ``retrieve`` when the vector store holds no documents.
    tool_calls_made:
        Chronological log of every tool invocation.
    iteration:
        Number of tool-execution rounds so far.
    max_iterations:
        Tool rounds allowed before the agent gives up.
    answer:
        Final answer text.
    citations:
        Resolved, deduplicated citations in first-seen order.
    """

    messages: Annotated[list[BaseMessage], add_messages]
    query: str
    history: list[ChatTurn]
    documents: list[RetrievedDocument]
    citation_map: dict[str, dict[str, Any]]
    knowledge_base_empty: bool
    tool_calls_made: Annotated[list[ToolCallRecord], _append_list]
    iteration: int
    max_iterations: int
    answer: str
    citations: list[Citation]
