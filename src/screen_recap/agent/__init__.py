"""
Agent Module
============

Capture session orchestration.

    - session.py: SessionController, the per-session state machine
    - graph.py: LangGraph finalization workflow (drain → collect → summarize)

Key Design Decisions:
    - LangGraph is used for STRUCTURE, not LLM reasoning
    - All session state lives on one controller instance
    - Presentation layers observe sessions through the event bus only
"""

from screen_recap.agent.graph import build_finalize_graph
from screen_recap.agent.session import SessionController

__all__ = [
    "SessionController",
    "build_finalize_graph",
]
