"""
Achievement catalogue and unlock engine.

Each definition names a ``requirement_type`` and a ``requirement_value``
(e.g. ``win_count`` / ``{"count": 10}``). ``check_achievements`` measures
the player's current value for every type, unlocks whatever now qualifies,
and credits the reward XP to the player's stats.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database_models import (
    AchievementDefinition,
    GameResult,
    PlayerStats,
    QuizAnswer,
    QuizSession,
    RoomMember,
    User,
    UserAchievement,
)
from app.services.player_stats import add_xp, get_or_create_stats
from app.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

MIN_QUESTIONS_FOR_ACCURACY = 10
MULTIPLAYER_WIN_ACCURACY = 60.0


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

# (code, name, description, icon, category, rarity, xp_reward, requirement_type, requirement_value)
ACHIEVEMENT_CATALOGUE: List[Tuple[str, str, str, str, str, str, int, str, Dict[str, int]]] = [
    # Wins
    ("first_win", "First Victory", "Win your first quiz battle", "trophy", "wins", "common", 50, "win_count", {"count": 1}),
    ("decade_warrior", "Decade Warrior", "Win 10 quiz battles", "star", "wins", "rare", 200, "win_count", {"count": 10}),
    ("century_champion", "Century Champion", "Win 100 quiz battles", "crown", "wins", "epic", 1000, "win_count", {"count": 100}),
    ("undefeated", "Undefeated", "Win 5 battles in a row", "shield", "wins", "rare", 300, "win_streak", {"count": 5}),
    ("unbeatable", "Unbeatable", "Win 10 battles in a row", "crown", "wins", "epic", 750, "win_streak", {"count": 10}),
    # Daily streaks
    ("streak_3_days", "Consistency Starter", "Maintain a 3-day study streak", "flame", "streaks", "common", 100, "daily_streak", {"days": 3}),
    ("streak_7_days", "Week Warrior", "Maintain a 7-day study streak", "flame", "streaks", "rare", 250, "daily_streak", {"days": 7}),
    ("streak_14_days", "Fortnight Fighter", "Maintain a 14-day study streak", "flame", "streaks", "rare", 500, "daily_streak", {"days": 14}),
    ("streak_30_days", "Monthly Master", "Maintain a 30-day study streak", "flame", "streaks", "epic", 1000, "daily_streak", {"days": 30}),
    ("streak_100_days", "Centurion", "Maintain a 100-day study streak", "flame", "streaks", "legendary", 5000, "daily_streak", {"days": 100}),
    # Accuracy
    ("sharp_shooter", "Sharp Shooter", "Achieve 80% accuracy or higher", "target", "accuracy", "rare", 200, "accuracy_threshold", {"threshold": 80}),
    ("marksman", "Marksman", "Achieve 90% accuracy or higher", "target", "accuracy", "epic", 500, "accuracy_threshold", {"threshold": 90}),
    ("perfect_score", "Perfect Score", "Get 100% on a quiz", "star", "accuracy", "epic", 750, "perfect_score", {"count": 1}),
    ("perfectionist", "Perfectionist", "Get 100% on 5 quizzes", "crown", "accuracy", "legendary", 2000, "perfect_score", {"count": 5}),
    # Activity
    ("knowledge_seeker", "Knowledge Seeker", "Answer 100 questions", "book", "activity", "common", 150, "questions_answered", {"count": 100}),
    ("scholar", "Scholar", "Answer 500 questions", "book", "activity", "rare", 500, "questions_answered", {"count": 500}),
    ("master_student", "Master Student", "Answer 1,000 questions", "graduation-cap", "activity", "epic", 1500, "questions_answered", {"count": 1000}),
    ("quiz_master", "Quiz Master", "Complete 50 quiz sessions", "trophy", "activity", "rare", 400, "sessions_completed", {"count": 50}),
    ("dedicated_learner", "Dedicated Learner", "Complete 200 quiz sessions", "crown", "activity", "epic", 2000, "sessions_completed", {"count": 200}),
    # Levels
    ("level_10", "Rising Star", "Reach level 10", "star", "level", "common", 200, "level_reached", {"level": 10}),
    ("level_25", "Experienced", "Reach level 25", "star", "level", "rare", 500, "level_reached", {"level": 25}),
    ("level_50", "Veteran", "Reach level 50", "crown", "level", "epic", 1500, "level_reached", {"level": 50}),
    ("level_100", "Legend", "Reach level 100", "crown", "level", "legendary", 5000, "level_reached", {"level": 100}),
    # Special
    ("first_quiz", "First Steps", "Complete your first quiz", "rocket", "special", "common", 25, "sessions_completed", {"count": 1}),
    ("speed_demon", "Speed Demon", "Answer a question in under 5 seconds", "zap", "special", "rare", 150, "speed_answer", {"seconds": 5}),
    ("social_butterfly", "Social Butterfly", "Join 10 multiplayer rooms", "users", "special", "rare", 300, "rooms_joined", {"count": 10}),
    ("team_player", "Team Player", "Win 5 multiplayer battles", "users", "special", "epic", 600, "multiplayer_wins", {"count": 5}),
    ("early_adopter", "Early Adopter", "Join Brain Battle in the first month", "sparkles", "special", "rare", 500, "account_age", {"days": 30}),
]


async def seed_achievement_definitions(db: AsyncSession) -> int:
    """Insert catalogue entries that are not in the table yet. Returns the count added."""
    result = await db.execute(select(AchievementDefinition.code))
    existing = set(result.scalars().all())

    added = 0
    for code, name, description, icon, category, rarity, xp_reward, req_type, req_value in ACHIEVEMENT_CATALOGUE:
        if code in existing:
            continue
        db.add(AchievementDefinition(
            code=code,
            name=name,
            description=description,
            icon=icon,
            category=category,
            rarity=rarity,
            xp_reward=xp_reward,
            requirement_type=req_type,
            requirement_value=req_value,
            is_active=True,
        ))
        added += 1

    if added:
        await db.flush()
    return added


# ---------------------------------------------------------------------------
# Progress measurement
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class PlayerProgress:
    """Snapshot of every metric an achievement can be gated on."""

    total_wins: int = 0
    win_streak: int = 0
    daily_streak: int = 0
    accuracy: float = 0.0
    total_questions_answered: int = 0
    total_games: int = 0
    level: int = 1
    perfect_scores: int = 0
    fastest_correct_answer: Optional[float] = None
    rooms_joined: int = 0
    multiplayer_wins: int = 0
    account_age_days: int = 0


def _target(requirement_value: Dict[str, Any]) -> float:
    for key in ("count", "days", "threshold", "level", "seconds"):
        if key in requirement_value:
            return float(requirement_value[key])
    return 0.0


def evaluate_requirement(
    requirement_type: str,
    requirement_value: Dict[str, Any],
    progress: PlayerProgress,
) -> Tuple[bool, Dict[str, Any]]:
    """
    Return ``(qualifies, {"current": ..., "target": ...})`` for one rule.

    Unknown requirement types never qualify.
    """
    target = _target(requirement_value or {})
    current: float

    if requirement_type == "win_count":
        current = progress.total_wins
    elif requirement_type == "win_streak":
        current = progress.win_streak
    elif requirement_type == "daily_streak":
        current = progress.daily_streak
    elif requirement_type == "accuracy_threshold":
        current = progress.accuracy
        if progress.total_questions_answered < MIN_QUESTIONS_FOR_ACCURACY:
            return False, {"current": current, "target": target}
    elif requirement_type == "questions_answered":
        current = progress.total_questions_answered
    elif requirement_type == "sessions_completed":
        current = progress.total_games
    elif requirement_type == "level_reached":
        current = progress.level
    elif requirement_type == "perfect_score":
        current = progress.perfect_scores
    elif requirement_type == "speed_answer":
        # Lower is better: qualifies with any correct answer under the limit
        fastest = progress.fastest_correct_answer
        qualifies = fastest is not None and fastest < target
        return qualifies, {"current": fastest, "target": target}
    elif requirement_type == "rooms_joined":
        current = progress.rooms_joined
    elif requirement_type == "multiplayer_wins":
        current = progress.multiplayer_wins
    elif requirement_type == "account_age":
        current = progress.account_age_days
    else:
        return False, {}

    return current >= target, {"current": current, "target": target}


async def measure_progress(db: AsyncSession, user: User, stats: PlayerStats) -> PlayerProgress:
    """Gather stats-row metrics plus the few that need their own queries."""
    perfect = await db.execute(
        select(func.count(GameResult.id)).where(
            GameResult.user_id == user.id,
            GameResult.accuracy >= 100.0,
        )
    )
    fastest = await db.execute(
        select(func.min(QuizAnswer.time_taken)).where(
            QuizAnswer.user_id == user.id,
            QuizAnswer.is_correct.is_(True),
            QuizAnswer.time_taken.is_not(None),
        )
    )
    rooms = await db.execute(
        select(func.count(RoomMember.id)).where(RoomMember.user_id == user.id)
    )
    mp_wins = await db.execute(
        select(func.count(GameResult.id))
        .join(QuizSession, QuizSession.id == GameResult.session_id)
        .where(
            GameResult.user_id == user.id,
            QuizSession.room_id.is_not(None),
            GameResult.accuracy >= MULTIPLAYER_WIN_ACCURACY,
        )
    )

    created_at = as_utc(user.created_at) or utcnow()
    return PlayerProgress(
        total_wins=stats.total_wins or 0,
        win_streak=max(stats.win_streak or 0, stats.best_streak or 0),
        daily_streak=max(stats.daily_streak or 0, stats.longest_streak or 0),
        accuracy=float(stats.accuracy or 0.0),
        total_questions_answered=stats.total_questions_answered or 0,
        total_games=stats.total_games or 0,
        level=stats.level or 1,
        perfect_scores=perfect.scalar() or 0,
        fastest_correct_answer=fastest.scalar(),
        rooms_joined=rooms.scalar() or 0,
        multiplayer_wins=mp_wins.scalar() or 0,
        account_age_days=max(0, (utcnow() - created_at).days),
    )


# ---------------------------------------------------------------------------
# Unlocking
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class UnlockedAchievement:
    code: str
    name: str
    description: str
    icon: str
    rarity: str
    xp_reward: int
    progress: Dict[str, Any]


async def check_achievements(db: AsyncSession, user: User) -> List[UnlockedAchievement]:
    """Unlock every active achievement the user now qualifies for."""
    await seed_achievement_definitions(db)
    stats = await get_or_create_stats(db, user.id)
    progress = await measure_progress(db, user, stats)

    owned_result = await db.execute(
        select(UserAchievement.achievement_code).where(UserAchievement.user_id == user.id)
    )
    owned = set(owned_result.scalars().all())

    defs_result = await db.execute(
        select(AchievementDefinition)
        .where(AchievementDefinition.is_active.is_(True))
        .order_by(AchievementDefinition.id)
    )

    unlocked: List[UnlockedAchievement] = []
    for definition in defs_result.scalars().all():
        if definition.code in owned:
            continue
        qualifies, prog = evaluate_requirement(
            definition.requirement_type, definition.requirement_value or {}, progress
        )
        if not qualifies:
            continue

        db.add(UserAchievement(
            user_id=user.id,
            achievement_code=definition.code,
            progress=prog,
            xp_earned=definition.xp_reward,
        ))
        owned.add(definition.code)

        add_xp(stats, definition.xp_reward)
        unlocked.append(UnlockedAchievement(
            code=definition.code,
            name=definition.name,
            description=definition.description,
            icon=definition.icon,
            rarity=definition.rarity,
            xp_reward=definition.xp_reward,
            progress=prog,
        ))

    if unlocked:
        await db.flush()
        logger.info(
            "Unlocked %d achievement(s) for user=%s: %s",
            len(unlocked), user.id, ", ".join(a.code for a in unlocked),
        )
    return unlocked
