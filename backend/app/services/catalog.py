"""Read access to the static story and regulation script catalogs."""
import copy
import random
from collections import defaultdict
from typing import Optional
from sqlmodel import Session, col, select

from app.db import engine
from app.errors import InsufficientContentError
from app.models import RegulationScript, Story


# Built-in scripts used when the catalog has nothing to offer
GENERIC_SCRIPTS = [
    {
        "id": "generic-breathing",
        "name": "Calm Breathing",
        "description": "Slow belly breaths to help your body settle.",
        "icon_emoji": "🌬️",
        "recommended_for_emotions": [],
        "recommended_for_intensities": [],
        "duration_seconds": 45,
        "steps": [
            "Sit or stand comfortably.",
            "Place one hand on your belly.",
            "Breathe in slowly through your nose.",
            "Breathe out slowly through your mouth.",
            "Repeat 3 times.",
        ],
    },
    {
        "id": "generic-counting",
        "name": "Count and Breathe",
        "description": "Count slowly while you breathe.",
        "icon_emoji": "🔢",
        "recommended_for_emotions": [],
        "recommended_for_intensities": [],
        "duration_seconds": 30,
        "steps": [
            "Close your eyes or look down.",
            "Breathe in while you count to three.",
            "Breathe out while you count to three.",
            "Do this four more times.",
        ],
    },
]


def story_summary(story: Story) -> dict:
    return {
        "id": story.id,
        "title": story.title,
        "text": story.text,
        "emotion": story.emotion,
        "age_band": story.age_band,
        "complexity_score": story.complexity_score,
    }


def script_summary(script: RegulationScript) -> dict:
    return script.model_dump()


class CatalogService:
    """Queries over the story and script catalogs."""

    @staticmethod
    def get_random_stories(age_band: str, count: int = 5, rng: random.Random | None = None) -> list[Story]:
        """Pick ``count`` stories for an age band, covering as many emotions as possible."""
        rng = rng or random.Random()
        with Session(engine) as db:
            stories = list(db.exec(select(Story).where(Story.age_band == age_band)).all())

        if len(stories) < count:
            raise InsufficientContentError(
                f"Not enough stories for age band {age_band}",
                details={"available": len(stories), "required": count},
            )

        by_emotion: dict[str, list[Story]] = defaultdict(list)
        for story in stories:
            by_emotion[story.emotion].append(story)
        emotions = list(by_emotion)
        rng.shuffle(emotions)

        selected: list[Story] = []
        # One per emotion first
        for emotion in emotions:
            if len(selected) >= count:
                break
            pool = by_emotion[emotion]
            selected.append(pool.pop(rng.randrange(len(pool))))

        remaining = [story for pool in by_emotion.values() for story in pool]
        while len(selected) < count:
            selected.append(remaining.pop(rng.randrange(len(remaining))))

        rng.shuffle(selected)
        return selected

    @staticmethod
    def get_story(story_id: str) -> Optional[Story]:
        with Session(engine) as db:
            return db.get(Story, story_id)

    @staticmethod
    def get_stories_by_ids(story_ids: list[str]) -> list[Story]:
        """Fetch stories keeping the order of ``story_ids``."""
        if not story_ids:
            return []
        with Session(engine) as db:
            rows = db.exec(select(Story).where(col(Story.id).in_(story_ids))).all()
        by_id = {story.id: story for story in rows}
        return [by_id[story_id] for story_id in story_ids if story_id in by_id]

    @staticmethod
    def find_story(age_band: str, emotion: str) -> Optional[Story]:
        with Session(engine) as db:
            statement = (
                select(Story)
                .where(Story.age_band == age_band, Story.emotion == emotion)
                .order_by(Story.id)
            )
            return db.exec(statement).first()

    @staticmethod
    def example_stories(age_band: str, limit: int = 3) -> list[Story]:
        with Session(engine) as db:
            statement = select(Story).where(Story.age_band == age_band).order_by(Story.id).limit(limit)
            return list(db.exec(statement).all())

    @staticmethod
    def get_script(script_id: str) -> Optional[RegulationScript]:
        with Session(engine) as db:
            return db.get(RegulationScript, script_id)

    @staticmethod
    def get_scripts_for_emotion(emotion: str, limit: int = 3) -> list[RegulationScript]:
        with Session(engine) as db:
            scripts = db.exec(select(RegulationScript).order_by(RegulationScript.name)).all()
        return [s for s in scripts if emotion in (s.recommended_for_emotions or [])][:limit]

    @staticmethod
    def get_recommended_scripts(emotion: str, intensity: int, limit: int = 3) -> list[dict]:
        """
        Scripts for an emotion and intensity, loosening the match step by step.

        emotion + intensity, then emotion only, then any scripts, then the
        built-in generic set.
        """
        with Session(engine) as db:
            scripts = list(db.exec(select(RegulationScript).order_by(RegulationScript.name)).all())

        for_emotion = [s for s in scripts if emotion in (s.recommended_for_emotions or [])]
        exact = [s for s in for_emotion if intensity in (s.recommended_for_intensities or [])]

        for candidates in (exact, for_emotion, scripts):
            if candidates:
                return [script_summary(s) for s in candidates[:limit]]
        return copy.deepcopy(GENERIC_SCRIPTS)


catalog_service = CatalogService()
