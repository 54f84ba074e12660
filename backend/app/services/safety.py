"""Content safety pipeline for generated stories, regulation scripts and praise.

Checks run in a fixed order and stop at the first failure. Each passed check
appends a flag, so the flag list reads as an audit trail of what was verified.
The pipeline never rewrites content; callers decide what to do with a failure.
"""
import re
from typing import Literal

from pydantic import BaseModel, ValidationError

from app.models import ContentKind, ObserverOutput, SafetyResult


CheckKind = Literal["story", "script", "praise"]


CRISIS_KEYWORDS = [
    "hurt myself",
    "kill myself",
    "want to die",
    "end my life",
    "suicide",
    "not worth living",
    "everyone hates me",
    "wish I was dead",
]

HIGH_SEVERITY_KEYWORDS = ["suicide", "kill myself", "want to die", "end my life", "hurt myself"]
MEDIUM_SEVERITY_KEYWORDS = ["hate myself", "hurt", "scared", "afraid", "alone"]

INAPPROPRIATE_KEYWORDS = [
    # Violence and harm
    "blood", "death", "die", "kill", "murder", "weapon", "gun", "knife", "stab",
    "beat up", "punch", "kick", "fight", "violence", "violent", "attack",
    # Abuse and trauma
    "abuse", "abused", "hurt myself", "hurt yourself", "hurt himself", "hurt herself",
    "suicide", "suicidal", "self-harm", "cutting",
    # Frightening
    "scary", "terror", "horror", "nightmare", "monster", "ghost", "demon",
    "creepy", "spooky", "haunted",
    # Adult content
    "sex", "sexual", "naked", "nude", "drugs", "alcohol", "drunk", "smoking",
    "cigarette", "beer", "wine",
    # Bullying and exclusion
    "stupid", "dumb", "idiot", "loser", "freak", "weirdo", "reject",
    "nobody likes", "everyone hates",
]

TOXIC_PATTERNS = [
    # Insulting
    "worthless", "pathetic", "useless", "disgusting", "revolting", "vile",
    "repulsive", "despicable", "contemptible", "insufferable",
    # Belittling
    "cry baby", "crybaby", "wimp", "weakling", "coward", "baby",
    "grow up", "get over it", "stop being", "quit being",
    # Rejection
    "nobody wants", "no one likes", "everyone thinks", "everybody knows",
    "hate you", "wish you", "better off without",
    # Shaming
    "should be ashamed", "embarrassing", "embarrassment", "shame on you",
    "disgrace", "disappointment", "failed", "failure",
    # Aggressive
    "shut up", "get lost", "go away", "leave me alone", "i hate",
    # Comparative harm
    "worse than", "not as good", "never be", "always will be",
]

PSEUDOSCIENCE_KEYWORDS = [
    "chakra", "chakras", "energy healing", "aura", "crystal", "reiki",
    "quantum healing", "vibration", "frequency healing", "essential oils cure",
]

GENERIC_PRAISE_PHRASES = ["good job", "great work", "nice", "well done"]

LENGTH_LIMITS = {
    "story": (10, 500),
    "praise": (10, 500),
    "script": (5, 200),
}

LENGTH_LABELS = {"story": "Story", "praise": "Praise", "script": "Script step"}


class CrisisCheckResult(BaseModel):
    """Crisis keyword scan with a severity grade."""
    has_crisis_keywords: bool
    matched_keywords: list[str]
    severity: Literal["low", "medium", "high"]
    should_alert: bool


def _whole_word_matches(text: str, keywords: list[str]) -> list[str]:
    return [
        keyword for keyword in keywords
        if re.search(rf"\b{re.escape(keyword.lower())}\b", text, re.IGNORECASE)
    ]


def _substring_matches(text: str, patterns: list[str]) -> list[str]:
    lowered = text.lower()
    return [pattern for pattern in patterns if pattern.lower() in lowered]


def _failed(flag: str, passed_flags: list[str], reason: str, **extra) -> SafetyResult:
    return SafetyResult(passed=False, flags=[flag, *passed_flags], reason=reason, **extra)


# ==================== Individual checks ====================

def check_crisis_keywords(text: str) -> CrisisCheckResult:
    """Whole-word, case-insensitive scan for crisis language."""
    matched = _whole_word_matches(text.strip(), CRISIS_KEYWORDS)

    if not matched:
        severity = "low"
    elif any(high in keyword.lower() for keyword in matched for high in HIGH_SEVERITY_KEYWORDS):
        severity = "high"
    elif len(matched) >= 2 or any(
        medium in keyword.lower() for keyword in matched for medium in MEDIUM_SEVERITY_KEYWORDS
    ):
        severity = "medium"
    else:
        severity = "low"

    return CrisisCheckResult(
        has_crisis_keywords=bool(matched),
        matched_keywords=matched,
        severity=severity,
        should_alert=severity in ("medium", "high"),
    )


def check_inappropriate_keywords(text: str) -> list[str]:
    return _whole_word_matches(text, INAPPROPRIATE_KEYWORDS)


def check_toxicity(text: str) -> tuple[list[str], float]:
    """Return matched toxic patterns and a 0-1 score. Any match fails the content."""
    matched = _substring_matches(text, TOXIC_PATTERNS)
    return matched, min(len(matched) * 0.2, 1.0)


def check_pseudoscience(text: str) -> list[str]:
    return _substring_matches(text, PSEUDOSCIENCE_KEYWORDS)


def _validate_length(content: str, kind: CheckKind) -> str | None:
    length = len(content.strip())
    minimum, maximum = LENGTH_LIMITS[kind]
    label = LENGTH_LABELS[kind]
    if length < minimum:
        return f"{label} too short ({length} < {minimum} chars)"
    if length > maximum:
        return f"{label} too long ({length} > {maximum} chars)"
    return None


def _validate_basic(content: str) -> str | None:
    trimmed = content.strip()
    if not trimmed:
        return "Empty content"

    letters = [c for c in trimmed if c.isascii() and c.isalpha()]
    uppercase = [c for c in letters if c.isupper()]
    if letters and len(uppercase) / len(letters) > 0.5:
        return "Excessive capitalization detected"

    words = trimmed.split()
    unique = {word.lower() for word in words}
    if len(words) > 5 and len(unique) < len(words) * 0.3:
        return "Excessive word repetition detected"

    return None


# ==================== Pipelines ====================

def run_content_safety_check(content: str, kind: CheckKind) -> SafetyResult:
    """Run the ordered text checks for one piece of child-facing content."""
    flags: list[str] = []

    crisis = check_crisis_keywords(content)

    reason = _validate_length(content, kind)
    if reason:
        # Crisis language is still tagged so the alert is never lost
        if crisis.has_crisis_keywords:
            return SafetyResult(
                passed=False,
                flags=["length_violation", "crisis_keywords_detected"],
                reason=reason,
                keyword_violations=crisis.matched_keywords,
            )
        return SafetyResult(passed=False, flags=["length_violation"], reason=reason)
    flags.append("length_valid")

    if crisis.has_crisis_keywords:
        return _failed(
            "crisis_keywords_detected", flags,
            f"Crisis keywords detected: {', '.join(crisis.matched_keywords)}",
            keyword_violations=crisis.matched_keywords,
        )
    flags.append("crisis_keywords_passed")

    inappropriate = check_inappropriate_keywords(content)
    if inappropriate:
        return _failed(
            "inappropriate_content", flags,
            f"Inappropriate keywords detected: {', '.join(inappropriate)}",
            keyword_violations=inappropriate,
        )
    flags.append("keyword_filter_passed")

    toxic, score = check_toxicity(content)
    if toxic:
        return _failed(
            "toxicity_detected", flags,
            f"Toxic content detected: {', '.join(toxic)}",
            keyword_violations=toxic,
            toxicity_score=score,
        )
    flags.append("toxicity_check_passed")

    reason = _validate_basic(content)
    if reason:
        return _failed("basic_validation_failed", flags, reason)
    flags.append("basic_validation_passed")

    return SafetyResult(passed=True, flags=[*flags, "all_checks_passed"])


def validate_story_output(story: dict) -> SafetyResult:
    text = story.get("story_text", "")
    result = run_content_safety_check(text, "story")
    if not result.passed:
        return result
    flags = list(result.flags)

    sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
    if not 2 <= len(sentences) <= 4:
        return _failed(
            "sentence_count_invalid", flags,
            f"Story should have 2-4 sentences, got {len(sentences)}",
        )
    flags.append("sentence_count_valid")

    complexity = story.get("complexity_score")
    if not isinstance(complexity, int) or not 1 <= complexity <= 5:
        return _failed(
            "complexity_out_of_range", flags,
            f"Complexity score must be 1-5, got {complexity}",
        )
    flags.append("complexity_valid")

    return SafetyResult(passed=True, flags=[*flags, "story_validation_passed"])


def validate_script_output(script: dict) -> SafetyResult:
    primary = script.get("primary_script") or {}
    steps = primary.get("steps") or []
    duration = primary.get("duration_seconds", 0)
    flags: list[str] = []

    if not 4 <= len(steps) <= 7:
        return SafetyResult(
            passed=False,
            flags=["step_count_invalid"],
            reason=f"Script should have 4-7 steps, got {len(steps)}",
        )
    flags.append("step_count_valid")

    if not 30 <= duration <= 120:
        return _failed(
            "duration_invalid", flags,
            f"Duration should be 30-120 seconds, got {duration}",
        )
    flags.append("duration_valid")

    for index, step in enumerate(steps, start=1):
        step_result = run_content_safety_check(step, "script")
        if not step_result.passed:
            return _failed(
                f"step_{index}_failed", [*step_result.flags[:1], *flags],
                f"Step {index} failed safety check: {step_result.reason}",
                keyword_violations=step_result.keyword_violations,
            )
    flags.append("all_steps_safe")

    matched = check_pseudoscience(" ".join(steps))
    if matched:
        return _failed(
            "pseudoscience_detected", flags,
            "Pseudoscience keywords detected in script",
            keyword_violations=matched,
        )
    flags.append("pseudoscience_check_passed")

    return SafetyResult(passed=True, flags=[*flags, "script_validation_passed"])


def validate_praise_output(praise: dict) -> SafetyResult:
    message = praise.get("praise_message", "")
    result = run_content_safety_check(message, "praise")
    if not result.passed:
        return result
    flags = list(result.flags)

    lowered = message.lower()
    highlights = praise.get("highlights") or []
    if not highlights and all(phrase in lowered for phrase in GENERIC_PRAISE_PHRASES):
        return _failed(
            "praise_too_generic", flags,
            "Praise lacks specific achievements or highlights",
        )
    flags.append("praise_specific")

    return SafetyResult(passed=True, flags=[*flags, "praise_validation_passed"])


def validate_analysis_output(analysis: dict) -> SafetyResult:
    """Analyses are never shown to children; only their shape is checked."""
    try:
        ObserverOutput.model_validate(analysis)
    except ValidationError as exc:
        return SafetyResult(
            passed=False,
            flags=["schema_invalid"],
            reason=f"Analysis does not match schema: {exc.error_count()} errors",
        )
    return SafetyResult(passed=True, flags=["schema_validated"])


VALIDATORS = {
    ContentKind.ANALYSIS: validate_analysis_output,
    ContentKind.STORY: validate_story_output,
    ContentKind.SCRIPT: validate_script_output,
    ContentKind.PRAISE: validate_praise_output,
}


def validate_content(kind: ContentKind, content: dict) -> SafetyResult:
    """Dispatch to the validator for a generation kind."""
    return VALIDATORS[ContentKind(kind)](content)
