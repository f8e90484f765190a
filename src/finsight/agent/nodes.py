"""Graph nodes — each function is one step of the chat agent.

Node contract
-------------
* Accepts the full :class:`AgentState` dict plus the run ``config``.
* Returns a *partial* dict with **only the keys that changed**.
* Collaborators (vector store, embeddings, chat model, tool registry) come
  from ``config["configurable"]``, never from module globals, so that
  every node is independently testable with fakes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from langchain_core.messages import AIMessage, ToolMessage
from langchain_core.runnables import RunnableConfig

from finsight.agent.citations import extract_citations
from finsight.agent.prompts import (
    EMPTY_KNOWLEDGE_BASE_MESSAGE,
    NO_RESPONSE_MESSAGE,
    TOOL_LOOP_EXCEEDED_MESSAGE,
    build_chat_messages,
    build_grounding_prompt,
)
from finsight.agent.state import AgentState, ToolCallRecord
from finsight.config import settings

logger = logging.getLogger(__name__)

UNKNOWN_FUNCTION_MESSAGE = "Unknown function"


def _configurable(config: RunnableConfig | None, name: str, default: Any = None) -> Any:
    value = ((config or {}).get("configurable") or {}).get(name, default)
    if value is None and default is None:
        raise KeyError(f"Agent run is missing configurable {name!r}")
    return value


def _message_text(message: AIMessage) -> str:
    """Plain text of a model reply (content may be a list of parts)."""
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


# ── 1. RETRIEVE ───────────────────────────────────────────────────────


async def retrieve(state: AgentState, config: RunnableConfig) -> dict[str, Any]:
    """Fetch the ``top_k`` passages nearest to the question.

    An empty vector store is flagged instead of searched; the graph then
    answers without calling the model.
    """
    vector_store = _configurable(config, "vector_store")
    if await asyncio.to_thread(vector_store.is_empty):
        logger.info("Knowledge base is empty; skipping retrieval")
        return {"knowledge_base_empty": True, "documents": []}

    embeddings = _configurable(config, "embeddings")
    top_k = _configurable(config, "top_k", settings.top_k)
    query_embedding = await embeddings.aembed_query(state["query"])
    documents = await asyncio.to_thread(vector_store.similarity_search, query_embedding, k=top_k)
    logger.info("Retrieved %d passage(s)", len(documents))
    return {"knowledge_base_empty": False, "documents": documents}


# ── 2. EMPTY KNOWLEDGE BASE ───────────────────────────────────────────


def empty_knowledge_base(state: AgentState) -> dict[str, Any]:
    return {"answer": EMPTY_KNOWLEDGE_BASE_MESSAGE, "citations": []}


# ── 3. BUILD PROMPT ───────────────────────────────────────────────────


def build_prompt(state: AgentState) -> dict[str, Any]:
    """Assemble the model transcript and the per-request citation map."""
    prompt, citation_map = build_grounding_prompt(state["query"], state.get("documents", []))
    return {
        "messages": build_chat_messages(prompt, state.get("history", [])),
        "citation_map": citation_map,
    }


# ── 4. CALL MODEL ─────────────────────────────────────────────────────


async def call_model(state: AgentState, config: RunnableConfig) -> dict[str, Any]:
    """Ask the chat model for the next turn, with every tool bound."""
    llm = _configurable(config, "llm")
    tools = _configurable(config, "tools", {})
    model = llm.bind_tools(list(tools.values())) if tools else llm
    response = await model.ainvoke(state["messages"])
    return {"messages": [response]}


# ── 5. EXECUTE TOOLS ──────────────────────────────────────────────────


async def execute_tools(state: AgentState, config: RunnableConfig) -> dict[str, Any]:
    """Run every tool call of the last model turn.

    Each call gets exactly one :class:`ToolMessage` keyed by its id, in
    request order.  A failing tool produces an error result and does not
    stop its siblings.
    """
    tools = _configurable(config, "tools", {})
    last = state["messages"][-1]

    results: list[ToolMessage] = []
    log: list[ToolCallRecord] = []
    for call in getattr(last, "tool_calls", None) or []:
        name, args, call_id = call["name"], call.get("args") or {}, call["id"]
        tool = tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool %r", name)
            content = UNKNOWN_FUNCTION_MESSAGE
        else:
            try:
                content = str(await tool.ainvoke(args))
            except Exception as exc:
                logger.exception("Tool %s failed", name)
                content = f"Error executing {name}: {exc}"

        results.append(ToolMessage(content=content, tool_call_id=call_id, name=name))
        log.append(ToolCallRecord(call_id=call_id, tool_name=name, tool_input=dict(args), result=content))

    return {
        "messages": results,
        "tool_calls_made": log,
        "iteration": state.get("iteration", 0) + 1,
    }


# ── 6. TOOL LIMIT ─────────────────────────────────────────────────────


def tool_limit(state: AgentState) -> dict[str, Any]:
    """The model kept asking for tools; refuse instead of guessing."""
    logger.warning("Tool loop exceeded %d round(s)", state.get("max_iterations", 0))
    return {"answer": TOOL_LOOP_EXCEEDED_MESSAGE, "citations": []}


# ── 7. FINALIZE ───────────────────────────────────────────────────────


def finalize(state: AgentState) -> dict[str, Any]:
    """Take the last model reply as the answer and resolve its citations."""
    last = state["messages"][-1]
    answer = _message_text(last) or NO_RESPONSE_MESSAGE
    citations = extract_citations(answer, state.get("citation_map", {}))
    return {"answer": answer, "citations": citations}


# ── 8. ROUTING (conditional edges) ────────────────────────────────────


def route_after_retrieval(state: AgentState) -> str:
    """``"empty_knowledge_base"`` when the store had nothing, else ``"build_prompt"``."""
    if state.get("knowledge_base_empty", False):
        return "empty_knowledge_base"
    return "build_prompt"


def route_after_model(state: AgentState) -> str:
    """Conditional edge after ``call_model``.

    Returns
    -------
    str
        ``"finalize"`` when the reply has no tool calls,
        ``"execute_tools"`` while tool rounds remain,
        ``"tool_limit"`` once ``max_iterations`` rounds have run.
    """
    last = state["messages"][-1]
    if not getattr(last, "tool_calls", None):
        return "finalize"
    if state.get("iteration", 0) >= state.get("max_iterations", settings.max_tool_iterations):
        return "tool_limit"
    return "execute_tools"
