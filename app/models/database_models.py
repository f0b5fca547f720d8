"""
SQLAlchemy ORM models for the Brain Battle database.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    ForeignKey,
    Float,
    Boolean,
    Enum as SQLEnum,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from app.database import Base
from app.utils.helpers import utcnow


# Enums
class Difficulty(str, enum.Enum):
    """Quiz difficulty; drives the XP multiplier."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class RoomStatus(str, enum.Enum):
    """Lifecycle of a multiplayer lobby."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"


class SessionStatus(str, enum.Enum):
    """Lifecycle of a single played quiz."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETE = "complete"


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    OPEN_ENDED = "open_ended"


class ClanRole(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class SubscriptionTier(str, enum.Enum):
    FREE = "free"
    PRO = "pro"


def _enum_column(enum_cls):
    """Store enum *values* ("medium"), not member names, as plain VARCHAR."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
    )


# Models
class User(Base):
    """User account (identity supplied by the upstream auth layer)."""

    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    display_name = Column(String(100), nullable=True)
    subscription_tier = Column(
        _enum_column(SubscriptionTier), default=SubscriptionTier.FREE, nullable=False
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class PlayerStats(Base):
    """Aggregated XP, level and win/loss record for one user."""

    __tablename__ = "player_stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    xp = Column(Integer, default=0, nullable=False)
    level = Column(Integer, default=1, nullable=False)  # xp // 1000 + 1

    total_games = Column(Integer, default=0, nullable=False)
    total_wins = Column(Integer, default=0, nullable=False)
    total_losses = Column(Integer, default=0, nullable=False)
    win_streak = Column(Integer, default=0, nullable=False)
    best_streak = Column(Integer, default=0, nullable=False)

    total_questions_answered = Column(Integer, default=0, nullable=False)
    correct_answers = Column(Integer, default=0, nullable=False)
    accuracy = Column(Float, default=0.0, nullable=False)  # percentage 0-100

    # Daily activity streak
    daily_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    last_activity_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class GameRoom(Base):
    """Multiplayer lobby with a 6-character join code."""

    __tablename__ = "game_rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_code = Column(String(6), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    host_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    max_players = Column(Integer, default=4, nullable=False)
    current_players = Column(Integer, default=0, nullable=False)
    difficulty = Column(_enum_column(Difficulty), default=Difficulty.MEDIUM, nullable=False)
    is_private = Column(Boolean, default=False, nullable=False)
    time_limit = Column(Integer, default=30, nullable=False)  # seconds per question
    total_questions = Column(Integer, default=10, nullable=False)
    topic = Column(Text, nullable=True)
    status = Column(_enum_column(RoomStatus), default=RoomStatus.WAITING, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    members = relationship("RoomMember", back_populates="room", cascade="all, delete-orphan")
    sessions = relationship("QuizSession", back_populates="room", cascade="all, delete-orphan")


class RoomMember(Base):
    __tablename__ = "room_members"
    __table_args__ = (UniqueConstraint("room_id", "user_id", name="uq_room_members_room_user"),)

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("game_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_ready = Column(Boolean, default=False, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    room = relationship("GameRoom", back_populates="members")


class Clan(Base):
    """Persistent classroom-style group that hosts recurring quiz sessions."""

    __tablename__ = "clans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    clan_code = Column(String(8), nullable=False, unique=True, index=True)
    owner_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_private = Column(Boolean, default=False, nullable=False)
    max_members = Column(Integer, default=50, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    # Relationships
    members = relationship("ClanMember", back_populates="clan", cascade="all, delete-orphan")
    sessions = relationship("QuizSession", back_populates="clan", cascade="all, delete-orphan")


class ClanMember(Base):
    __tablename__ = "clan_members"
    __table_args__ = (UniqueConstraint("clan_id", "user_id", name="uq_clan_members_clan_user"),)

    id = Column(Integer, primary_key=True, index=True)
    clan_id = Column(Integer, ForeignKey("clans.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(_enum_column(ClanRole), default=ClanRole.MEMBER, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    clan = relationship("Clan", back_populates="members")


class QuizSession(Base):
    """
    One played quiz. Owned by a room, a clan, or neither (singleplayer).
    """

    __tablename__ = "quiz_sessions"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("game_rooms.id", ondelete="CASCADE"), nullable=True, index=True)
    clan_id = Column(Integer, ForeignKey("clans.id", ondelete="CASCADE"), nullable=True, index=True)
    created_by = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    session_name = Column(String(255), nullable=True)
    topic = Column(Text, nullable=True)
    difficulty = Column(_enum_column(Difficulty), default=Difficulty.MEDIUM, nullable=False)
    total_questions = Column(Integer, default=10, nullable=False)
    time_limit = Column(Integer, default=30, nullable=False)
    status = Column(_enum_column(SessionStatus), default=SessionStatus.WAITING, nullable=False, index=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    # Relationships
    room = relationship("GameRoom", back_populates="sessions")
    clan = relationship("Clan", back_populates="sessions")
    questions = relationship("Question", back_populates="session", cascade="all, delete-orphan")
    answers = relationship("QuizAnswer", back_populates="session", cascade="all, delete-orphan")
    results = relationship("GameResult", back_populates="session", cascade="all, delete-orphan")
    events = relationship("SessionEvent", back_populates="session", cascade="all, delete-orphan")


class Question(Base):
    """A question served in a session, ordered by idx."""

    __tablename__ = "questions"
    __table_args__ = (UniqueConstraint("session_id", "idx", name="uq_questions_session_idx"),)

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("quiz_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    idx = Column(Integer, nullable=False)
    type = Column(_enum_column(QuestionType), nullable=False)
    prompt = Column(Text, nullable=False)
    options = Column(JSON, nullable=True)  # multiple choice only
    correct_index = Column(Integer, nullable=True)  # multiple choice only
    expected_answers = Column(JSON, nullable=True)  # open ended only
    answer_format = Column(String(32), nullable=True)  # "number" / "text"
    explanation = Column(Text, nullable=True)
    hints = Column(JSON, nullable=True)
    meta = Column(JSON, nullable=True)

    session = relationship("QuizSession", back_populates="questions")


class QuizAnswer(Base):
    """An answer submitted by a participant during a session."""

    __tablename__ = "quiz_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "user_id", "question_idx", name="uq_quiz_answers_session_user_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("quiz_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    question_idx = Column(Integer, nullable=False)
    answer = Column(JSON, nullable=True)  # option index or free text
    is_correct = Column(Boolean, default=False, nullable=False)
    time_taken = Column(Float, nullable=True)  # seconds
    submitted_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    session = relationship("QuizSession", back_populates="answers")


class GameResult(Base):
    """Final, verified outcome of one player in one session."""

    __tablename__ = "game_results"
    __table_args__ = (UniqueConstraint("session_id", "user_id", name="uq_game_results_session_user"),)

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("quiz_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    final_score = Column(Float, default=0.0, nullable=False)
    questions_answered = Column(Integer, default=0, nullable=False)
    correct_answers = Column(Integer, default=0, nullable=False)
    accuracy = Column(Float, default=0.0, nullable=False)  # percentage 0-100
    total_time = Column(Float, default=0.0, nullable=False)
    average_time = Column(Float, nullable=True)
    rank = Column(Integer, nullable=True)  # null for singleplayer
    xp_earned = Column(Integer, default=0, nullable=False)
    xp_breakdown = Column(JSON, nullable=True)
    completed_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    session = relationship("QuizSession", back_populates="results")


class SessionEvent(Base):
    """Event log entry for a session (anti-cheat reports and the like)."""

    __tablename__ = "session_events"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("quiz_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    session = relationship("QuizSession", back_populates="events")


class AchievementDefinition(Base):
    """Catalogue entry describing how an achievement is unlocked."""

    __tablename__ = "achievement_definitions"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String(50), nullable=False)
    category = Column(String(50), nullable=False)
    rarity = Column(String(20), nullable=False)  # common, rare, epic, legendary
    xp_reward = Column(Integer, default=0, nullable=False)
    requirement_type = Column(String(50), nullable=False)
    requirement_value = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class UserAchievement(Base):
    """An achievement unlocked by a user."""

    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_code", name="uq_achievements_user_code"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    achievement_code = Column(
        String(64), ForeignKey("achievement_definitions.code", ondelete="CASCADE"), nullable=False
    )
    progress = Column(JSON, nullable=True)  # {"current": n, "target": m}
    xp_earned = Column(Integer, default=0, nullable=False)
    unlocked_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Document(Base):
    """Uploaded study document with parsed content."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)
    file_type = Column(String(50), nullable=False)  # pdf, docx, txt, md
    file_size = Column(Integer, default=0, nullable=False)
    content_text = Column(Text, nullable=True)  # Full extracted text
    metadata_json = Column(JSON, nullable=True)  # page_count, language, etc.
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class StudyNote(Base):
    """LLM-generated structured study notes."""

    __tablename__ = "study_notes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    topic = Column(Text, nullable=True)
    content = Column(JSON, nullable=False)  # outline, key_terms, concepts, diagrams, quiz
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class QuestionHistory(Base):
    """Every question served to a user, used to avoid repeats."""

    __tablename__ = "quiz_question_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True, index=True)
    topic_hash = Column(String(32), nullable=True, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(32), nullable=True)
    options = Column(JSON, nullable=True)
    correct_answer = Column(Text, nullable=True)
    explanation = Column(Text, nullable=True)
    asked_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    answers = relationship("AnswerHistory", back_populates="question", cascade="all, delete-orphan")


class AnswerHistory(Base):
    __tablename__ = "quiz_answer_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    question_history_id = Column(
        Integer, ForeignKey("quiz_question_history.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id = Column(Integer, ForeignKey("quiz_sessions.id", ondelete="SET NULL"), nullable=True)
    user_answer = Column(Text, nullable=True)
    is_correct = Column(Boolean, default=False, nullable=False)
    time_taken = Column(Float, nullable=True)
    answered_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    question = relationship("QuestionHistory", back_populates="answers")
