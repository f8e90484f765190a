"""
Agent — grounded chat agent built with LangGraph.

The agent retrieves passages from the vector store, lets the model call
the economic data tools, and returns an answer whose citations point back
at the passages it used.  Every collaborator is injected, so the graph
runs locally against fakes.

Public API
----------
- :class:`ChatAgent` — ``await agent.answer(message, history)``.
- :func:`build_graph` — compile the workflow.
- :func:`create_initial_state` — bootstrap the state dict for ``graph.ainvoke()``.
- :func:`extract_citations` — resolve citation tokens in an answer.
"""

from finsight.agent.chat import ChatAgent
from finsight.agent.citations import citation_token, extract_citations
from finsight.agent.graph import build_graph, create_initial_state
from finsight.agent.state import AgentAnswer, AgentState, ChatTurn, ToolCallRecord

__all__ = [
    "AgentAnswer",
    "AgentState",
    "ChatAgent",
    "ChatTurn",
    "ToolCallRecord",
    "build_graph",
    "citation_token",
    "create_initial_state",
    "extract_citations",
]
