"""LangGraph graph definition — the grounded chat workflow.

This module wires the nodes defined in :mod:`finsight.agent.nodes` into a
compiled :class:`StateGraph`:

1. **Retrieve** the passages nearest to the question (or stop early when
   the knowledge base is empty).
2. **Build** the grounding prompt and the citation map.
3. **Call** the chat model with the data tools bound.
4. **Execute** requested tools and loop back, up to ``max_iterations``
   rounds.
5. **Finalize** the answer and resolve the citations it uses.

The graph runs without any external infrastructure when fakes are passed
through ``config["configurable"]`` (see tests).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from langgraph.graph import END, StateGraph

from finsight.agent.nodes import (
    build_prompt,
    call_model,
    empty_knowledge_base,
    execute_tools,
    finalize,
    retrieve,
    route_after_model,
    route_after_retrieval,
    tool_limit,
)
from finsight.agent.state import AgentState, ChatTurn


def build_graph() -> StateGraph:
    """Construct and return the compiled LangGraph agent.

    Graph topology::

          [ START ]
              ▼
        ┌──────────┐  empty   ┌──────────────────────┐
        │ retrieve  ├────────►│ empty_knowledge_base  ├──► END
        └────┬─────┘          └──────────────────────┘
             ▼
        ┌──────────────┐
        │ build_prompt  │
        └──────┬───────┘
               ▼
        ┌──────────────┐  tool calls  ┌──────────────┐
        │  call_model   ├────────────►│ execute_tools │
        └──┬─────┬─────┘◄─────────────┴──────────────┘
           │     │ rounds exhausted
           │     └──► tool_limit ──► END
           ▼
        ┌──────────┐
        │ finalize  ├──► END
        └──────────┘

    Returns
    -------
    CompiledGraph
        A compiled LangGraph workflow ready for ``.ainvoke()``.
    """
    workflow = StateGraph(AgentState)

    # -- Nodes ---------------------------------------------------------------
    workflow.add_node("retrieve", retrieve)
    workflow.add_node("empty_knowledge_base", empty_knowledge_base)
    workflow.add_node("build_prompt", build_prompt)
    workflow.add_node("call_model", call_model)
    workflow.add_node("execute_tools", execute_tools)
    workflow.add_node("tool_limit", tool_limit)
    workflow.add_node("finalize", finalize)

    # -- Edges ---------------------------------------------------------------
    workflow.set_entry_point("retrieve")
    workflow.add_conditional_edges(
        "retrieve",
        route_after_retrieval,
        {
            "empty_knowledge_base": "empty_knowledge_base",
            "build_prompt": "build_prompt",
        },
    )
    workflow.add_edge("build_prompt", "call_model")
    workflow.add_conditional_edges(
        "call_model",
        route_after_model,
        {
            "execute_tools": "execute_tools",
            "tool_limit": "tool_limit",
            "finalize": "finalize",
        },
    )
    workflow.add_edge("execute_tools", "call_model")
    workflow.add_edge("empty_knowledge_base", END)
    workflow.add_edge("tool_limit", END)
    workflow.add_edge("finalize", END)

    return workflow.compile()


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------


def create_initial_state(
    query: str,
    *,
    history: Sequence[ChatTurn] = (),
    max_iterations: int = 5,
) -> dict[str, Any]:
    """Build a minimal initial state dict for ``graph.ainvoke()``."""
    return {
        "query": query,
        "history": list(history),
        "messages": [],
        "documents": [],
        "citation_map": {},
        "knowledge_base_empty": False,
        "tool_calls_made": [],
        "iteration": 0,
        "max_iterations": max_iterations,
        "answer": "",
        "citations": [],
    }


def recursion_limit_for(max_iterations: int) -> int:
    """Graph steps needed for *max_iterations* tool rounds, with headroom."""
    return 2 * max_iterations + 10
