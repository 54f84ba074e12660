"""Fallback node - swaps in the static content prepared for the request."""
from app.models import GenerationState, SafetyResult, add_note
from .prompts import FALLBACK_PRAISE


def fallback_safety_result(state: GenerationState) -> SafetyResult:
    """Explain why the fallback was served."""
    if state.get("error_flag") == "timeout_error":
        return SafetyResult(passed=False, flags=["timeout_error"], reason="Generation timed out")
    if state.get("error_flag"):
        return SafetyResult(
            passed=False,
            flags=["error_occurred"],
            reason=state.get("error") or "Generation failed",
        )
    # Safety rejection: keep the failing result
    return SafetyResult.model_validate(state["safety_result"])


async def fallback_node(state: GenerationState) -> dict:
    result = fallback_safety_result(state)
    return {
        "output": state["fallback"],
        "fallback_used": True,
        "safety_result": result.model_dump(),
        "notes": add_note(state, "fallback", f"Serving static content ({result.flags[0]})"),
    }


def fallback_praise(nickname: str) -> dict:
    return {
        "praise_message": FALLBACK_PRAISE.format(nickname=nickname),
        "highlights": [],
        "encouragement_focus": "",
        "badge_emoji": None,
    }


def static_praise(nickname: str, labeled_emotion: str, is_correct: bool,
                  pre_intensity: int, post_intensity: int) -> dict:
    """Praise chosen by how much the feeling shrank, for sessions without agents."""
    improvement = pre_intensity - post_intensity
    if improvement >= 2:
        message = (f"Amazing work, {nickname}! You did a great job calming down. "
                   "Your body and mind are getting stronger at handling big feelings!")
        badge = "🏆"
    elif improvement == 1:
        message = (f"Great job, {nickname}! You helped yourself feel a little calmer. "
                   "That takes practice and you're doing it!")
        badge = "⭐"
    elif improvement == 0:
        message = (f"Good try, {nickname}! Sometimes feelings stay big for a while, "
                   "and that's okay. You practiced a helpful skill today!")
        badge = "✨"
    else:
        message = (f"Thank you for practicing, {nickname}! Learning about feelings is "
                   "important, even when they feel tricky.")
        badge = "🎉"

    if is_correct:
        message += f" You recognized the feeling of {labeled_emotion}. That's a superpower!"

    return {"praise_message": message, "highlights": [], "encouragement_focus": "", "badge_emoji": badge}

