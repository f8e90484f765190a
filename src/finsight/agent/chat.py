"""Chat facade — one grounded answer per user message."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.tools import BaseTool

from finsight.agent.graph import build_graph, create_initial_state, recursion_limit_for
from finsight.agent.state import AgentAnswer, ChatTurn
from finsight.agent.tools import build_tool_registry
from finsight.config import settings
from finsight.retrieval.base import VectorStoreBase
from finsight.storage.cpi_store import CpiStore

logger = logging.getLogger(__name__)


class ChatAgent:
    """Answer questions from the knowledge base, the CPI table and live data tools.

    Parameters
    ----------
    vector_store:
        Store searched for grounding passages.
    embeddings:
        Must be the provider the documents were embedded with.
    cpi_store:
        Backs the ``get_cpi`` tool; ``None`` leaves the tool unavailable.
    llm:
        Chat model with tool calling.  Defaults to :func:`~finsight.agent.llm.get_llm`.
    tools:
        Name → tool mapping; defaults to :func:`~finsight.agent.tools.build_tool_registry`.
    """

    def __init__(
        self,
        vector_store: VectorStoreBase,
        embeddings: Embeddings,
        cpi_store: CpiStore | None = None,
        llm: BaseChatModel | None = None,
        *,
        tools: dict[str, BaseTool] | None = None,
        top_k: int | None = None,
        max_tool_iterations: int | None = None,
    ) -> None:
        if llm is None:
            from finsight.agent.llm import get_llm

            llm = get_llm()
        self.vector_store = vector_store
        self.embeddings = embeddings
        self.llm = llm
        self.tools = tools if tools is not None else build_tool_registry(cpi_store)
        self.top_k = top_k or settings.top_k
        self.max_tool_iterations = max_tool_iterations or settings.max_tool_iterations
        self.graph = build_graph()

    async def answer(
        self,
        message: str,
        history: Sequence[ChatTurn | dict[str, Any]] = (),
    ) -> AgentAnswer:
        """Run the graph for *message* after the prior *history* turns."""
        turns = [t if isinstance(t, ChatTurn) else ChatTurn.model_validate(t) for t in history]
        state = create_initial_state(message, history=turns, max_iterations=self.max_tool_iterations)
        result = await self.graph.ainvoke(
            state,
            config={
                "configurable": {
                    "vector_store": self.vector_store,
                    "embeddings": self.embeddings,
                    "llm": self.llm,
                    "tools": self.tools,
                    "top_k": self.top_k,
                },
                "recursion_limit": recursion_limit_for(self.max_tool_iterations),
            },
        )
        tool_calls = result.get("tool_calls_made", [])
        if tool_calls:
            logger.info("Answer used %d tool call(s): %s", len(tool_calls), [c.tool_name for c in tool_calls])
        return AgentAnswer(text=result["answer"], citations=result.get("citations", []))
