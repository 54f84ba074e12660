"""Generator node - asks the chat model for one piece of content."""
import logging

from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from app.errors import GenerationTimeoutError
from app.models import (
    ContentKind,
    GenerationState,
    ObserverOutput,
    PraiseOutput,
    ScriptOutput,
    StoryOutput,
    add_note,
)
from app.services.timeout import run_with_timeout

logger = logging.getLogger(__name__)


OUTPUT_MODELS = {
    ContentKind.ANALYSIS: ObserverOutput,
    ContentKind.STORY: StoryOutput,
    ContentKind.SCRIPT: ScriptOutput,
    ContentKind.PRAISE: PraiseOutput,
}


async def generate_node(state: GenerationState, config: RunnableConfig) -> dict:
    """
    Call the provider under the kind's deadline and parse the typed reply.

    Timeouts and provider or parse errors are recorded on the state rather
    than raised, so the graph can route to the fallback node.
    """
    options = config.get("configurable", {})
    client = options["client"]
    deadline = options["deadline"]
    kind = ContentKind(state["kind"])

    try:
        raw, model, tokens = await run_with_timeout(
            client.generate_json(kind.value, state["user_payload"]),
            deadline,
        )
        output = OUTPUT_MODELS[kind].model_validate(raw).model_dump(mode="json")
    except GenerationTimeoutError as exc:
        logger.warning("%s generation timed out after %ss", kind.value, deadline)
        return {
            "error": exc.message,
            "error_flag": "timeout_error",
            "notes": add_note(state, "generate", f"Timed out after {deadline:g}s"),
        }
    except (ValidationError, ValueError) as exc:
        logger.warning("%s generation returned invalid output: %s", kind.value, exc)
        return {
            "error": f"Invalid response format: {exc}",
            "error_flag": "error_occurred",
            "notes": add_note(state, "generate", "Reply did not match the expected schema"),
        }
    except Exception as exc:
        logger.exception("%s generation failed", kind.value)
        return {
            "error": str(exc) or exc.__class__.__name__,
            "error_flag": "error_occurred",
            "notes": add_note(state, "generate", f"Provider error: {exc.__class__.__name__}"),
        }

    return {
        "output": output,
        "model_version": model,
        "tokens_used": tokens,
        "notes": add_note(state, "generate", f"Received {kind.value} from {model}"),
    }
