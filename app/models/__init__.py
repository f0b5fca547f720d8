"""Database and schema models for Brain Battle."""
from app.models.database_models import (
    User,
    PlayerStats,
    GameRoom,
    RoomMember,
    Clan,
    ClanMember,
    QuizSession,
    Question,
    QuizAnswer,
    GameResult,
    SessionEvent,
    AchievementDefinition,
    UserAchievement,
    Document,
    StudyNote,
    QuestionHistory,
    AnswerHistory,
    Difficulty,
    RoomStatus,
    SessionStatus,
    QuestionType,
    ClanRole,
    SubscriptionTier,
)
from app.models.schemas import (
    RoomCreateRequest,
    RoomResponse,
    SessionResponse,
    QuizQuestionSchema,
    MultiplayerResultsResponse,
    PlayerStatsResponse,
    ClanResponse,
    DocumentResponse,
    QuizGenerateResponse,
    StudyNoteResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "User",
    "PlayerStats",
    "GameRoom",
    "RoomMember",
    "Clan",
    "ClanMember",
    "QuizSession",
    "Question",
    "QuizAnswer",
    "GameResult",
    "SessionEvent",
    "AchievementDefinition",
    "UserAchievement",
    "Document",
    "StudyNote",
    "QuestionHistory",
    "AnswerHistory",
    "Difficulty",
    "RoomStatus",
    "SessionStatus",
    "QuestionType",
    "ClanRole",
    "SubscriptionTier",
    # Schemas
    "RoomCreateRequest",
    "RoomResponse",
    "SessionResponse",
    "QuizQuestionSchema",
    "MultiplayerResultsResponse",
    "PlayerStatsResponse",
    "ClanResponse",
    "DocumentResponse",
    "QuizGenerateResponse",
    "StudyNoteResponse",
    "HealthCheckResponse",
]
