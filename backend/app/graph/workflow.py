"""LangGraph workflow definition for content generation."""
from typing import Literal
from langgraph.graph import StateGraph, END

from app.models import GenerationState
from app.agents import (
    generate_node,
    safety_guardian_node,
    fallback_node,
    finalize_node,
)


def route_after_generate(state: GenerationState) -> Literal["safety_guardian", "fallback"]:
    """Provider errors and timeouts go straight to the fallback."""
    if state.get("error_flag") or state.get("output") is None:
        return "fallback"
    return "safety_guardian"


def route_after_safety(state: GenerationState) -> Literal["finalize", "fallback"]:
    """Route based on safety check results."""
    result = state.get("safety_result") or {}
    if result.get("passed"):
        return "finalize"
    return "fallback"


def create_workflow():
    """
    Create the generation workflow shared by every content kind.

    Graph Structure:
            ┌──────────┐
            │ Generate │
            └────┬─────┘
                 │
        ┌────────┴─────────┐
        │ ok               │ error / timeout
        ▼                  │
    ┌──────────┐           │
    │  Safety  │           │
    │ Guardian │           │
    └────┬─────┘           │
         │                 │
    ┌────┴─────┐           │
    │ passed   │ failed    │
    │          ▼           ▼
    │        ┌───────────────┐
    │        │   Fallback    │
    │        └───────┬───────┘
    ▼                ▼
    ┌─────────────────────┐
    │      Finalize       │
    └─────────────────────┘

    The provider client and the deadline are passed per call through
    ``config["configurable"]``.
    """
    workflow = StateGraph(GenerationState)

    workflow.add_node("generate", generate_node)
    workflow.add_node("safety_guardian", safety_guardian_node)
    workflow.add_node("fallback", fallback_node)
    workflow.add_node("finalize", finalize_node)

    workflow.set_entry_point("generate")

    workflow.add_conditional_edges(
        "generate",
        route_after_generate,
        {
            "safety_guardian": "safety_guardian",
            "fallback": "fallback",
        }
    )

    workflow.add_conditional_edges(
        "safety_guardian",
        route_after_safety,
        {
            "finalize": "finalize",
            "fallback": "fallback",
        }
    )

    workflow.add_edge("fallback", "finalize")
    workflow.add_edge("finalize", END)

    return workflow.compile()
