"""Safety Guardian node - runs the content safety pipeline on generated output."""
import logging

from app.models import ContentKind, GenerationState, add_note
from app.services.safety import validate_content

logger = logging.getLogger(__name__)


async def safety_guardian_node(state: GenerationState) -> dict:
    """
    Validate the generated output for its kind.

    A failed result sends the graph to the fallback node; the generated
    output is never edited here.
    """
    kind = ContentKind(state["kind"])
    result = validate_content(kind, state["output"] or {})

    if result.passed:
        note_message = f"Safety checks passed ({len(result.flags)} flags)"
    else:
        logger.warning(
            "safety_rejected: generated %s failed (%s): %s",
            kind.value, ", ".join(result.flags), result.reason,
        )
        note_message = f"Safety check failed: {result.reason}"

    return {
        "safety_result": result.model_dump(),
        "notes": add_note(state, "safety_guardian", note_message),
    }
