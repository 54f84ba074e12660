"""Finalize Node - stamps timing on the finished generation."""
import time

from app.models import GenerationState, add_note


async def finalize_node(state: GenerationState) -> dict:
    """
    Terminal node for every generation request.

    Persistence of the audit row happens in the orchestrator.
    """
    elapsed_ms = int((time.monotonic() - state["started_at"]) * 1000)
    source = "fallback" if state.get("fallback_used") else "generated"
    return {
        "generation_time_ms": elapsed_ms,
        "notes": add_note(state, "finalize", f"Finished with {source} content in {elapsed_ms}ms"),
    }
