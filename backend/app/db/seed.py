"""Static story and regulation script catalogs loaded into an empty database."""
import logging

from sqlmodel import Session, select

from app.models import RegulationScript, Story

logger = logging.getLogger(__name__)


STORIES = [
    # 6-7
    ("young-happy-1", "The Red Balloon", "Mia got a red balloon at the fair. She held the string tight and smiled all the way home.", "happy", "6-7", 1),
    ("young-sad-1", "Lost Teddy", "Sam could not find his teddy bear at bedtime. He looked under the bed and his eyes filled with tears.", "sad", "6-7", 1),
    ("young-angry-1", "The Tower", "Leo built a tall tower of blocks. His brother knocked it over and Leo stomped his feet.", "angry", "6-7", 2),
    ("young-scared-1", "Thunder Night", "A loud clap of thunder woke Ava up. She pulled her blanket over her head and held her breath.", "scared", "6-7", 1),
    ("young-surprised-1", "The Kitten", "Noah opened the box on his birthday. A tiny kitten popped out and his mouth fell open.", "surprised", "6-7", 1),
    ("young-calm-1", "Bath Time", "Zoe sat in the warm bath with her bubbles. She listened to the water and felt soft and slow.", "calm", "6-7", 1),
    # 8-9
    ("middle-happy-1", "Team Goal", "Priya passed the ball to her friend at recess. He scored and the whole team cheered her name.", "happy", "8-9", 2),
    ("middle-sad-1", "Moving Day", "Ben's best friend moved to another town. Ben looked at the empty house next door and felt heavy inside.", "sad", "8-9", 2),
    ("middle-angry-1", "Broken Rule", "Jada waited her turn for the swing all recess. Another kid cut in line and Jada's face got hot.", "angry", "8-9", 2),
    ("middle-scared-1", "First Dive", "Omar stood at the edge of the high diving board. His knees shook as he looked down at the pool.", "scared", "8-9", 3),
    ("middle-disgusted-1", "Lunch Surprise", "Lily opened her lunchbox and found an old banana squished on her sandwich. She wrinkled her nose and pushed it away.", "disgusted", "8-9", 2),
    ("middle-calm-1", "Reading Nook", "Kai curled up in the reading corner with his favorite book. The room was quiet and his shoulders relaxed.", "calm", "8-9", 2),
    # 10-12
    ("older-happy-1", "Science Fair", "Rosa's volcano project won second place at the science fair. She grinned as her teacher pinned the ribbon on her poster.", "happy", "10-12", 3),
    ("older-sad-1", "Missed Tryout", "Ethan practiced all summer for the soccer team. When the list went up, his name was not on it, and he walked home slowly.", "sad", "10-12", 3),
    ("older-angry-1", "Group Project", "Maya did most of the work on the group project. Her partner took the credit in front of the class, and Maya clenched her jaw.", "angry", "10-12", 3),
    ("older-scared-1", "Class Speech", "Arjun had to give a speech in front of the whole grade. His heart pounded as he walked up to the front of the room.", "scared", "10-12", 3),
    ("older-surprised-1", "Secret Plan", "Chloe walked into the kitchen after school. All her friends jumped up with a cake for her twelfth birthday.", "surprised", "10-12", 2),
    ("older-calm-1", "Morning Walk", "Sam walked to school early while the street was still quiet. The cool air and birdsong made the busy day feel manageable.", "calm", "10-12", 3),
]


SCRIPTS = [
    {
        "id": "bubble-breathing",
        "name": "Bubble Breathing",
        "description": "Slow breaths like blowing a big bubble.",
        "icon_emoji": "🫧",
        "recommended_for_emotions": ["sad", "angry", "scared", "surprised", "disgusted"],
        "recommended_for_intensities": [2, 3, 4, 5],
        "duration_seconds": 45,
        "steps": [
            "Sit down and get comfortable.",
            "Pretend you are holding a bubble wand.",
            "Breathe in slowly through your nose.",
            "Blow out gently to make a big bubble.",
            "Do it three more times.",
        ],
    },
    {
        "id": "wall-pushes",
        "name": "Wall Pushes",
        "description": "Push against a wall to let big energy out.",
        "icon_emoji": "🧱",
        "recommended_for_emotions": ["angry", "scared"],
        "recommended_for_intensities": [4, 5],
        "duration_seconds": 40,
        "steps": [
            "Stand facing a wall.",
            "Put both hands flat on the wall.",
            "Push as hard as you can for five seconds.",
            "Let go and shake out your arms.",
            "Repeat two more times.",
        ],
    },
    {
        "id": "count-to-ten",
        "name": "Count to Ten",
        "description": "Slow counting to give your body time to settle.",
        "icon_emoji": "🔢",
        "recommended_for_emotions": ["angry", "surprised"],
        "recommended_for_intensities": [1, 2, 3, 4],
        "duration_seconds": 30,
        "steps": [
            "Close your eyes or look at the floor.",
            "Count slowly from one to five.",
            "Take one deep breath.",
            "Count slowly from six to ten.",
        ],
    },
    {
        "id": "grounding-5-4-3-2-1",
        "name": "5-4-3-2-1 Grounding",
        "description": "Use your senses to notice what is around you.",
        "icon_emoji": "🖐️",
        "recommended_for_emotions": ["scared", "surprised"],
        "recommended_for_intensities": [3, 4, 5],
        "duration_seconds": 90,
        "steps": [
            "Name five things you can see.",
            "Name four things you can touch.",
            "Name three things you can hear.",
            "Name two things you can smell.",
            "Name one thing you can taste.",
        ],
    },
    {
        "id": "gentle-stretch",
        "name": "Gentle Stretch",
        "description": "Slow stretches to help your body relax.",
        "icon_emoji": "🙆",
        "recommended_for_emotions": ["sad", "scared", "disgusted", "calm"],
        "recommended_for_intensities": [1, 2, 3],
        "duration_seconds": 60,
        "steps": [
            "Stand up tall with your feet apart.",
            "Reach your arms up high.",
            "Lean slowly to one side.",
            "Lean slowly to the other side.",
            "Drop your arms and take a slow breath.",
        ],
    },
    {
        "id": "share-joy",
        "name": "Share the Joy",
        "description": "Notice a good feeling and share it.",
        "icon_emoji": "🌞",
        "recommended_for_emotions": ["happy", "calm"],
        "recommended_for_intensities": [1, 2, 3, 4, 5],
        "duration_seconds": 45,
        "steps": [
            "Notice where you feel happy in your body.",
            "Give that feeling a color.",
            "Think of someone you want to tell.",
            "Say one sentence about what made you smile.",
        ],
    },
]


def seed_catalog(engine) -> None:
    """Insert the static catalogs when their tables are empty."""
    with Session(engine) as db:
        if db.exec(select(Story)).first() is None:
            for story_id, title, text, emotion, age_band, complexity in STORIES:
                db.add(Story(
                    id=story_id,
                    title=title,
                    text=text,
                    emotion=emotion,
                    age_band=age_band,
                    complexity_score=complexity,
                ))
            logger.info("Seeded %d stories", len(STORIES))

        if db.exec(select(RegulationScript)).first() is None:
            for script in SCRIPTS:
                db.add(RegulationScript(**script))
            logger.info("Seeded %d regulation scripts", len(SCRIPTS))

        db.commit()
