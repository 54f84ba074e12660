"""Fake chat client and canned provider replies for tests."""
import asyncio


STORY_REPLY = {
    "story_text": (
        "Maya dropped her ice cream on the sidewalk. "
        "She looked at the melting scoop and her lip trembled. "
        "Her dad held her hand."
    ),
    "target_emotion": "sad",
    "theme": "small disappointments",
    "complexity_score": 2,
}

SCRIPT_REPLY = {
    "primary_script": {
        "name": "Belly Breathing",
        "steps": [
            "Place one hand on your belly.",
            "Breathe in slowly for four counts.",
            "Hold your breath for two counts.",
            "Breathe out slowly for six counts.",
            "Repeat three times and notice your body.",
        ],
        "duration_seconds": 45,
        "adaptation_note": "Longer exhale helps settle big feelings.",
    },
    "alternative_scripts": [
        {"name": "Wall Pushes", "brief_description": "Push the wall to let energy out"},
    ],
}

PRAISE_REPLY = {
    "praise_message": (
        "You noticed that feeling and used slow breathing to help your body "
        "calm down. That took real effort!"
    ),
    "highlights": ["Named the feeling", "Lowered the intensity"],
    "encouragement_focus": "Keep noticing your body clues.",
    "badge_emoji": "🏆",
}


def analysis_reply(round_id: str = "round-1") -> dict:
    return {
        "round_id": round_id,
        "story_theme": "small disappointments",
        "emotion_trajectory": {"start": "sad", "end": "calm"},
        "intensity_delta": -2,
        "regulation_effectiveness": "high",
        "contextual_insights": ["Breathing works well for this child"],
        "recommended_next_theme": "sharing with friends",
        "recommended_emotion_focus": "sad",
        "recommended_complexity": 3,
        "confidence_score": 0.7,
    }


class FakeClient:
    """Stands in for ``LLMClient``; replies, delays and errors are set per kind."""

    def __init__(self, replies=None, delays=None, errors=None):
        self.replies = {
            "analysis": analysis_reply(),
            "story": STORY_REPLY,
            "script": SCRIPT_REPLY,
            "praise": PRAISE_REPLY,
            **(replies or {}),
        }
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, dict]] = []
        self.cancelled: list[str] = []

    async def generate_json(self, kind: str, payload: dict):
        self.calls.append((kind, payload))
        try:
            if self.delays.get(kind):
                await asyncio.sleep(self.delays[kind])
        except asyncio.CancelledError:
            self.cancelled.append(kind)
            raise
        if kind in self.errors:
            raise self.errors[kind]
        return dict(self.replies[kind]), f"fake-{kind}", 42

    def kinds_called(self) -> list[str]:
        return [kind for kind, _ in self.calls]
