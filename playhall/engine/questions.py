"""
playhall.engine.questions — Static Trivia Question Bank
========================================================

An immutable pool of multiple-choice questions plus the selection
routine used when a quiz starts.

Selection policy:
  category filter → difficulty filter → Fisher–Yates shuffle → take N

A filter that leaves nothing is skipped with a warning instead of failing
the quiz; only an empty bank raises.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from playhall.errors import NoQuestionsAvailable

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = ("pubg", "general", "gaming", "esports")
DIFFICULTIES: tuple[str, ...] = ("easy", "medium", "hard")
MIXED = "mixed"

POINTS_BY_DIFFICULTY: dict[str, int] = {"easy": 10, "medium": 15, "hard": 20}


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    id: str
    prompt: str
    options: tuple[str, ...]
    correct_index: int
    difficulty: str
    category: str
    points: int
    time_limit: int = 30

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]


def _q(
    qid: str,
    prompt: str,
    options: Iterable[str],
    correct: int,
    difficulty: str,
    category: str,
    time_limit: int = 30,
) -> QuizQuestion:
    return QuizQuestion(
        id=qid,
        prompt=prompt,
        options=tuple(options),
        correct_index=correct,
        difficulty=difficulty,
        category=category,
        points=POINTS_BY_DIFFICULTY[difficulty],
        time_limit=time_limit,
    )


DEFAULT_QUESTIONS: tuple[QuizQuestion, ...] = (
    # --- pubg ------------------------------------------------------------
    _q("pubg_1", "What is the name of the original PUBG map?",
       ["Erangel", "Miramar", "Sanhok", "Vikendi"], 0, "easy", "pubg"),
    _q("pubg_2", "How many players drop into a classic PUBG match?",
       ["50", "80", "100", "120"], 2, "easy", "pubg"),
    _q("pubg_3", "Which item restores health to 100% but takes the longest to use?",
       ["Bandage", "First Aid Kit", "Med Kit", "Painkiller"], 2, "easy", "pubg"),
    _q("pubg_4", "Which weapon has the highest damage per shot?",
       ["AWM", "Kar98k", "M24", "Win94"], 0, "medium", "pubg", 45),
    _q("pubg_5", "In what year was PUBG officially released?",
       ["2016", "2017", "2018", "2019"], 1, "medium", "pubg"),
    _q("pubg_6", "Which ammo type does the M416 use?",
       ["7.62mm", "5.56mm", "9mm", ".45 ACP"], 1, "medium", "pubg"),
    _q("pubg_7", "What is the top speed of the final blue zone?",
       ["5 m/s", "7.5 m/s", "10 m/s", "12.5 m/s"], 1, "hard", "pubg", 60),
    _q("pubg_8", "Which crate-only rifle fires .300 Magnum rounds?",
       ["Mk14", "Groza", "AWM", "M249"], 2, "hard", "pubg", 45),
    # --- general ---------------------------------------------------------
    _q("general_1", "How many continents are there?",
       ["5", "6", "7", "8"], 2, "easy", "general"),
    _q("general_2", "What is the chemical symbol for gold?",
       ["Go", "Gd", "Au", "Ag"], 2, "medium", "general"),
    _q("general_3", "Which planet has the most confirmed moons?",
       ["Jupiter", "Saturn", "Uranus", "Neptune"], 1, "hard", "general"),
    # --- gaming ----------------------------------------------------------
    _q("gaming_1", "Which company created the Mario franchise?",
       ["Sega", "Sony", "Nintendo", "Atari"], 2, "easy", "gaming"),
    _q("gaming_2", "In which game do players build with blocks in a voxel world?",
       ["Terraria", "Minecraft", "Roblox", "Fortnite"], 1, "easy", "gaming"),
    _q("gaming_3", "What genre is PUBG considered the pioneer of in mainstream gaming?",
       ["MOBA", "Battle royale", "Roguelike", "MMO"], 1, "medium", "gaming"),
    _q("gaming_4", "Which engine was PUBG originally built on?",
       ["Unity", "Source", "Unreal Engine 4", "Frostbite"], 2, "hard", "gaming"),
    # --- esports ---------------------------------------------------------
    _q("esports_1", "What does 'GG' stand for?",
       ["Get Going", "Good Game", "Great Gun", "Go Green"], 1, "easy", "esports"),
    _q("esports_2", "What is the flagship international PUBG esports event called?",
       ["PGC", "TI", "Worlds", "Major"], 0, "medium", "esports"),
    _q("esports_3", "How many players are on a standard PUBG esports squad?",
       ["2", "3", "4", "5"], 2, "hard", "esports"),
)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------
def fisher_yates(items: Sequence[QuizQuestion], rng: random.Random) -> list[QuizQuestion]:
    """Return a uniformly shuffled copy of *items*."""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


class QuestionBank:
    """Filterable, read-only pool of :class:`QuizQuestion`."""

    def __init__(self, questions: Iterable[QuizQuestion] = DEFAULT_QUESTIONS) -> None:
        self._questions: tuple[QuizQuestion, ...] = tuple(questions)

    def __len__(self) -> int:
        return len(self._questions)

    @property
    def questions(self) -> tuple[QuizQuestion, ...]:
        return self._questions

    def select(
        self,
        count: int,
        category: str = MIXED,
        difficulty: str = MIXED,
        *,
        rng: random.Random | None = None,
    ) -> list[QuizQuestion]:
        """Pick up to *count* questions for a new quiz.

        Raises
        ------
        NoQuestionsAvailable
            If the bank is empty.
        """
        rng = rng or random.Random()
        pool = list(self._questions)

        if category != MIXED:
            filtered = [q for q in pool if q.category == category]
            if filtered:
                pool = filtered
            else:
                logger.warning(
                    "No questions for category %r — falling back to all categories",
                    category,
                )

        if difficulty != MIXED:
            filtered = [q for q in pool if q.difficulty == difficulty]
            if filtered:
                pool = filtered
            else:
                logger.warning(
                    "No %r questions after category filter — ignoring difficulty",
                    difficulty,
                )

        if not pool:
            raise NoQuestionsAvailable("The question bank is empty.")

        return fisher_yates(pool, rng)[: min(count, len(pool))]
