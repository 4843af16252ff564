"""
Finalization Graph
==================

LangGraph workflow run once per session after capture stops.

Graph Structure:
    START → drain → collect → summarize → END

    drain:     flush frames still in the buffer as a last batch
    collect:   await every dispatched batch, gather records in dispatch order
    summarize: fold the records into the summary text

LangGraph is used for CONTROL FLOW only. The node bodies are supplied by
the session controller, which owns the buffer, batches and summarizer.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, TypedDict

from langgraph.graph import END, StateGraph

from screen_recap.models.session import AnalysisRecord


logger = logging.getLogger(__name__)


class FinalizeState(TypedDict):
    """
    State passed through the finalization graph.

    Attributes:
        dispatched: Frames flushed by the drain node
        records: All records of the session, in dispatch order
        summary: Final summary text
        fallback: Whether the summary is the concatenation fallback
    """
    dispatched: int
    records: List[AnalysisRecord]
    summary: str
    fallback: bool


FinalizeNode = Callable[[FinalizeState], Awaitable[Dict[str, Any]]]


def create_initial_state() -> FinalizeState:
    """Create initial graph state."""
    return {
        "dispatched": 0,
        "records": [],
        "summary": "",
        "fallback": False,
    }


def build_finalize_graph(
    drain: FinalizeNode,
    collect: FinalizeNode,
    summarize: FinalizeNode,
):
    """
    Build and compile the finalization workflow.

    Args:
        drain: Node flushing the remaining buffered frames
        collect: Node awaiting batches and returning ``records``
        summarize: Node returning ``summary`` and ``fallback``

    Returns:
        Compiled graph; run with ``await graph.ainvoke(create_initial_state())``
    """
    workflow = StateGraph(FinalizeState)

    workflow.add_node("drain", drain)
    workflow.add_node("collect", collect)
    workflow.add_node("summarize", summarize)

    workflow.set_entry_point("drain")
    workflow.add_edge("drain", "collect")
    workflow.add_edge("collect", "summarize")
    workflow.add_edge("summarize", END)

    return workflow.compile()
