"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List, Dict, Any, Union
from datetime import date, datetime
from enum import Enum


# Enums (matching database enums)
class DifficultySchema(str, Enum):
    """Quiz difficulty levels."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionTypeSchema(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    OPEN_ENDED = "open_ended"


class ViolationType(str, Enum):
    """Client-side anti-cheat signals."""

    TAB_SWITCH = "tab_switch"
    WINDOW_BLUR = "window_blur"
    VISIBILITY_CHANGE = "visibility_change"


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# User Schemas
class UserProfileResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    display_name: Optional[str] = None
    subscription_tier: str
    created_at: datetime


class UserUpdateRequest(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=50)


class FeatureLimitsResponse(BaseModel):
    """What the caller's subscription tier allows."""

    tier: str
    max_players_per_room: int
    can_create_clans: bool
    max_clans: int
    max_clan_members: int
    documents_per_month: Optional[int] = None  # None = unlimited
    questions_per_quiz: int


# Room Schemas
class RoomCreateRequest(BaseModel):
    """Schema for creating a multiplayer room."""

    name: str = Field(..., min_length=1, max_length=100)
    max_players: int = Field(4, ge=2, le=20)
    difficulty: DifficultySchema = DifficultySchema.MEDIUM
    is_private: bool = False
    time_limit: int = Field(30, ge=10, le=300)
    total_questions: int = Field(10, ge=1, le=50)
    topic: Optional[str] = Field(None, max_length=500)


class RoomMemberResponse(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    is_ready: bool = False
    is_host: bool = False
    joined_at: datetime


class RoomResponse(BaseModel):
    """Schema for room responses."""

    id: int
    room_code: str
    name: str
    host_id: str
    max_players: int
    current_players: int
    difficulty: DifficultySchema
    is_private: bool
    time_limit: int
    total_questions: int
    topic: Optional[str] = None
    status: str
    created_at: datetime
    members: List[RoomMemberResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class RoomJoinRequest(BaseModel):
    room_code: str = Field(..., min_length=6, max_length=6)


class RoomJoinResponse(BaseModel):
    success: bool = True
    message: str
    room: RoomResponse


# Quiz Session Schemas
class SessionCreateRequest(BaseModel):
    room_id: int
    topic: Optional[str] = Field(None, max_length=500)


class SessionResponse(BaseModel):
    id: int
    room_id: Optional[int] = None
    clan_id: Optional[int] = None
    session_name: Optional[str] = None
    topic: Optional[str] = None
    difficulty: DifficultySchema
    total_questions: int
    time_limit: int
    status: str
    created_by: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: datetime
    question_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class QuizQuestionSchema(BaseModel):
    """
    A quiz question in generator format.

    Multiple choice uses ``options`` + ``correct`` (index); open-ended uses
    ``expected_answers`` + ``answer_format``.
    """

    type: QuestionTypeSchema
    question: str = Field(..., min_length=1)
    options: Optional[List[str]] = None
    correct: Optional[int] = None
    expected_answers: Optional[List[str]] = None
    answer_format: Optional[str] = None
    hints: Optional[List[str]] = None
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def _check_answer_key(self):
        if self.type == QuestionTypeSchema.MULTIPLE_CHOICE:
            if not self.options or len(self.options) < 2:
                raise ValueError("multiple_choice questions need at least 2 options")
            if self.correct is None or not 0 <= self.correct < len(self.options):
                raise ValueError("'correct' must index one of the options")
        elif not self.expected_answers:
            raise ValueError("open_ended questions need expected_answers")
        return self


class SessionQuestionResponse(QuizQuestionSchema):
    idx: int


class SessionQuestionsRequest(BaseModel):
    questions: List[QuizQuestionSchema] = Field(..., min_length=1, max_length=50)


class SessionQuestionsResponse(BaseModel):
    session_id: int
    questions: List[SessionQuestionResponse]


class AnswerSubmitRequest(BaseModel):
    question_idx: int = Field(..., ge=0)
    answer: Union[int, str]
    time_taken: Optional[float] = Field(None, ge=0)


class AnswerSubmitResponse(BaseModel):
    session_id: int
    question_idx: int
    is_correct: bool
    explanation: Optional[str] = None


class CheatEventRequest(BaseModel):
    violation_type: ViolationType
    duration_ms: int = Field(0, ge=0)


class SessionEventResponse(BaseModel):
    id: int
    session_id: int
    user_id: str
    event_type: str
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Results Schemas
class PlayerResultIn(BaseModel):
    """Client-reported result; verified against stored answers."""

    user_id: str
    score: float = 0.0
    questions_answered: int = Field(0, ge=0)
    correct_answers: int = Field(0, ge=0)
    total_time: float = Field(0.0, ge=0)
    average_time_per_question: Optional[float] = Field(None, ge=0)


class MultiplayerResultsRequest(BaseModel):
    session_id: int
    player_results: List[PlayerResultIn] = Field(default_factory=list)


class XPBreakdownSchema(BaseModel):
    base_xp: int
    speed_bonus: int
    perfect_score_bonus: int
    streak_bonus: int
    rank_bonus: int
    total_xp: int


class PlayerRankingResponse(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    rank: int
    score: float
    questions_answered: int
    correct_answers: int
    accuracy: float
    total_time: float
    xp_earned: int
    xp_breakdown: Optional[XPBreakdownSchema] = None


class MultiplayerResultsResponse(BaseModel):
    success: bool = True
    session_id: int
    xp_awarded: bool
    message: str
    results: List[PlayerRankingResponse]


class SingleplayerAnswerIn(BaseModel):
    question: str
    user_answer: Optional[str] = None
    is_correct: bool
    time_taken: Optional[float] = Field(None, ge=0)
    question_type: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None


class SingleplayerResultRequest(BaseModel):
    total_questions: int = Field(..., ge=1, le=50)
    correct_answers: int = Field(..., ge=0)
    topic: Optional[str] = Field(None, max_length=500)
    difficulty: DifficultySchema = DifficultySchema.MEDIUM
    document_id: Optional[int] = None
    time_spent: Optional[float] = Field(None, ge=0)
    answers: List[SingleplayerAnswerIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_counts(self):
        if self.correct_answers > self.total_questions:
            raise ValueError("correct_answers cannot exceed total_questions")
        return self


class SingleplayerResultResponse(BaseModel):
    success: bool = True
    session_id: int
    xp_earned: int
    total_xp: int
    level: int
    leveled_up: bool
    accuracy: float
    total_questions_answered: int
    correct_answers: int


class GameResultResponse(BaseModel):
    id: int
    session_id: int
    session_name: Optional[str] = None
    topic: Optional[str] = None
    is_multiplayer: bool
    final_score: float
    questions_answered: int
    correct_answers: int
    accuracy: float
    rank: Optional[int] = None
    xp_earned: int
    completed_at: datetime


# Stats Schemas
class RankInfoResponse(BaseModel):
    xp: int
    formatted_xp: str
    level: int
    xp_to_next_level: int
    level_progress: float
    rank: str
    rank_description: str
    rank_color: str
    rank_progress: float
    next_rank: Optional[str] = None
    xp_to_next_rank: int
    title: str


class PlayerStatsResponse(BaseModel):
    user_id: str
    xp: int
    level: int
    total_games: int
    total_wins: int
    total_losses: int
    win_streak: int
    best_streak: int
    total_questions_answered: int
    correct_answers: int
    accuracy: float
    daily_streak: int
    longest_streak: int
    last_activity_date: Optional[date] = None
    rank_info: Optional[RankInfoResponse] = None

    model_config = ConfigDict(from_attributes=True)


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    display_name: Optional[str] = None
    xp: int
    level: int
    total_games: int
    total_wins: int
    accuracy: float
    rank_name: str


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date] = None
    is_active_today: bool
    days_until_break: int


# Achievement Schemas
class AchievementResponse(BaseModel):
    code: str
    name: str
    description: str
    icon: str
    category: str
    rarity: str
    xp_reward: int
    requirement_type: str
    requirement_value: Dict[str, Any]
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    progress: Optional[Dict[str, Any]] = None


class UnlockedAchievementResponse(BaseModel):
    code: str
    name: str
    description: str
    icon: str
    rarity: str
    xp_reward: int
    progress: Dict[str, Any] = Field(default_factory=dict)


class AchievementCheckResponse(BaseModel):
    success: bool = True
    newly_unlocked: List[UnlockedAchievementResponse]
    xp_awarded: int
    total_xp: int


# Clan Schemas
class ClanCreateRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    is_private: bool = False
    max_members: int = Field(50, ge=2, le=100)


class ClanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    clan_code: str
    owner_id: str
    is_private: bool
    max_members: int
    member_count: int = 0
    role: Optional[str] = None
    is_owner: bool = False
    joined_at: Optional[datetime] = None
    created_at: datetime


class ClanJoinRequest(BaseModel):
    clan_code: str = Field(..., min_length=8, max_length=8)


class ClanJoinResponse(BaseModel):
    success: bool = True
    message: str
    clan: ClanResponse


class ClanMemberResponse(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    role: str
    joined_at: datetime
    xp: int = 0
    level: int = 1
    total_wins: int = 0
    total_games: int = 0
    accuracy: float = 0.0


class ClanLeaderboardEntry(ClanMemberResponse):
    rank: int


class ClanStatsResponse(BaseModel):
    clan_id: int
    clan_name: str
    total_members: int
    total_xp: int
    total_wins: int
    total_games: int
    average_accuracy: float
    leaderboard: List[ClanLeaderboardEntry]


class ClanSessionCreateRequest(BaseModel):
    topic: Optional[str] = Field(None, max_length=500)
    difficulty: DifficultySchema = DifficultySchema.MEDIUM
    total_questions: int = Field(10, ge=1, le=50)
    time_limit: int = Field(30, ge=10, le=300)


# Document Schemas
class DocumentUploadResponse(BaseModel):
    """Schema for document upload response."""

    id: int
    filename: str
    file_type: str
    file_size: int
    word_count: int = 0
    status: str = "processed"
    message: str = "Document uploaded successfully"


class DocumentResponse(BaseModel):
    """Schema for document details."""

    id: int
    filename: str
    file_type: str
    file_size: int = 0
    metadata_json: Optional[Dict[str, Any]] = None
    content_preview: Optional[str] = None
    created_at: datetime


class DocumentDetailResponse(DocumentResponse):
    content_text: Optional[str] = None


# Generation Schemas
class QuizGenerateRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    difficulty: DifficultySchema = DifficultySchema.MEDIUM
    total_questions: int = Field(5, ge=1, le=50)
    document_id: Optional[int] = None
    session_id: Optional[int] = None
    education_level: Optional[str] = Field(None, max_length=100)
    content_focus: Optional[str] = Field(None, max_length=200)
    instructions: Optional[str] = Field(None, max_length=2000)
    avoid_duplicates: bool = True


class QuizGenerateResponse(BaseModel):
    success: bool = True
    topic: str
    difficulty: DifficultySchema
    topic_hash: str
    questions: List[QuizQuestionSchema]
    duplicates_removed: int = 0
    session_id: Optional[int] = None


class EvaluateQuestion(BaseModel):
    """Loose question shape accepted by the evaluator (any generator field)."""

    type: Optional[str] = None
    question: Optional[str] = None
    options: Optional[List[str]] = None
    correct: Optional[int] = None
    expected_answers: Optional[List[str]] = None
    answer_format: Optional[str] = None
    a: Optional[str] = None
    explanation: Optional[str] = None


class EvaluateAnswerRequest(BaseModel):
    question: EvaluateQuestion
    user_answer: Union[int, str]


class EvaluateAnswerResponse(BaseModel):
    is_correct: bool
    used_llm: bool = False
    confidence: float


class WrongAnswerResponse(BaseModel):
    question_history_id: int
    question_text: str
    question_type: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    wrong_count: int
    total_attempts: int


# Study Notes Schemas
class NotesGenerateRequest(BaseModel):
    topic: Optional[str] = Field(None, max_length=500)
    document_id: Optional[int] = None
    instructions: Optional[str] = Field(None, max_length=2000)


class KeyTerm(BaseModel):
    term: str
    definition: str = ""


class ConceptSection(BaseModel):
    heading: str
    bullets: List[str] = Field(default_factory=list)


class DiagramIdea(BaseModel):
    title: str
    description: str = ""


class NoteQuizItem(BaseModel):
    q: str
    a: str


class StudyNoteContent(BaseModel):
    title: str
    outline: List[str] = Field(default_factory=list)
    key_terms: List[KeyTerm] = Field(default_factory=list)
    concepts: List[ConceptSection] = Field(default_factory=list)
    diagrams: List[DiagramIdea] = Field(default_factory=list)
    quiz: List[NoteQuizItem] = Field(default_factory=list)


class StudyNoteSummary(BaseModel):
    id: int
    title: str
    topic: Optional[str] = None
    document_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StudyNoteResponse(StudyNoteSummary):
    content: StudyNoteContent


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    database: str
    llm: str
    timestamp: datetime
