"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

All 17 tables as defined in app/models/database_models.py:
users, player_stats, game_rooms, room_members, clans, clan_members,
quiz_sessions, questions, quiz_answers, game_results, session_events,
achievement_definitions, achievements, documents, study_notes,
quiz_question_history, quiz_answer_history.

Enum columns are stored as VARCHAR(20) holding the enum value.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ENUM_LEN = 20


def _user_fk(nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(
        "user_id", sa.String(255), sa.ForeignKey("users.id", ondelete=ondelete),
        nullable=nullable, index=True,
    )


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("subscription_tier", sa.String(ENUM_LEN), nullable=False, server_default="free"),
        _created_at(),
    )

    # ── player_stats ──────────────────────────────────────────────────────
    op.create_table(
        "player_stats",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column(
            "user_id", sa.String(255), sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False, unique=True, index=True,
        ),
        sa.Column("xp", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("total_games", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_wins", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_losses", sa.Integer, nullable=False, server_default="0"),
        sa.Column("win_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_questions_answered", sa.Integer, nullable=False, server_default="0"),
        sa.Column("correct_answers", sa.Integer, nullable=False, server_default="0"),
        sa.Column("accuracy", sa.Float, nullable=False, server_default="0"),
        sa.Column("daily_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_activity_date", sa.Date, nullable=True),
        _created_at(),
        _created_at("updated_at"),
    )

    # ── game_rooms / room_members ─────────────────────────────────────────
    op.create_table(
        "game_rooms",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("room_code", sa.String(6), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "host_id", sa.String(255), sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("max_players", sa.Integer, nullable=False, server_default="4"),
        sa.Column("current_players", sa.Integer, nullable=False, server_default="0"),
        sa.Column("difficulty", sa.String(ENUM_LEN), nullable=False, server_default="medium"),
        sa.Column("is_private", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("time_limit", sa.Integer, nullable=False, server_default="30"),
        sa.Column("total_questions", sa.Integer, nullable=False, server_default="10"),
        sa.Column("topic", sa.Text, nullable=True),
        sa.Column("status", sa.String(ENUM_LEN), nullable=False, server_default="waiting", index=True),
        _created_at(),
        _created_at("updated_at"),
    )

    op.create_table(
        "room_members",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column(
            "room_id", sa.Integer, sa.ForeignKey("game_rooms.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        _user_fk(),
        sa.Column("is_ready", sa.Boolean, nullable=False, server_default=sa.false()),
        _created_at("joined_at"),
        sa.UniqueConstraint("room_id", "user_id", name="uq_room_members_room_user"),
    )

    # ── clans / clan_members ──────────────────────────────────────────────
    op.create_table(
        "clans",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("clan_code", sa.String(8), nullable=False, unique=True, index=True),
        sa.Column(
            "owner_id", sa.String(255), sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("is_private", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("max_members", sa.Integer, nullable=False, server_default="50"),
        _created_at(),
    )

    op.create_table(
        "clan_members",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column(
            "clan_id", sa.Integer, sa.ForeignKey("clans.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        _user_fk(),
        sa.Column("role", sa.String(ENUM_LEN), nullable=False, server_default="member"),
        _created_at("joined_at"),
        sa.UniqueConstraint("clan_id", "user_id", name="uq_clan_members_clan_user"),
    )

    # ── quiz_sessions and children ────────────────────────────────────────
    op.create_table(
        "quiz_sessions",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column(
            "room_id", sa.Integer, sa.ForeignKey("game_rooms.id", ondelete="CASCADE"),
            nullable=True, index=True,
        ),
        sa.Column(
            "clan_id", sa.Integer, sa.ForeignKey("clans.id", ondelete="CASCADE"),
            nullable=True, index=True,
        ),
        sa.Column(
            "created_by", sa.String(255), sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("session_name", sa.String(255), nullable=True),
        sa.Column("topic", sa.Text, nullable=True),
        sa.Column("difficulty", sa.String(ENUM_LEN), nullable=False, server_default="medium"),
        sa.Column("total_questions", sa.Integer, nullable=False, server_default="10"),
        sa.Column("time_limit", sa.Integer, nullable=False, server_default="30"),
        sa.Column("status", sa.String(ENUM_LEN), nullable=False, server_default="waiting", index=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column(
            "session_id", sa.Integer, sa.ForeignKey("quiz_sessions.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("idx", sa.Integer, nullable=False),
        sa.Column("type", sa.String(ENUM_LEN), nullable=False),
        sa.Column("prompt", sa.Text, nullable=False),
        sa.Column("options", sa.JSON, nullable=True),
        sa.Column("correct_index", sa.Integer, nullable=True),
        sa.Column("expected_answers", sa.JSON, nullable=True),
        sa.Column("answer_format", sa.String(32), nullable=True),
        sa.Column("explanation", sa.Text, nullable=True),
        sa.Column("hints", sa.JSON, nullable=True),
        sa.Column("meta", sa.JSON, nullable=True),
        sa.UniqueConstraint("session_id", "idx", name="uq_questions_session_idx"),
    )

    op.create_table(
        "quiz_answers",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column(
            "session_id", sa.Integer, sa.ForeignKey("quiz_sessions.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        _user_fk(),
        sa.Column("question_idx", sa.Integer, nullable=False),
        sa.Column("answer", sa.JSON, nullable=True),
        sa.Column("is_correct", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("time_taken", sa.Float, nullable=True),
        _created_at("submitted_at"),
        sa.UniqueConstraint(
            "session_id", "user_id", "question_idx", name="uq_quiz_answers_session_user_question"
        ),
    )

    op.create_table(
        "game_results",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column(
            "session_id", sa.Integer, sa.ForeignKey("quiz_sessions.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        _user_fk(),
        sa.Column("final_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("questions_answered", sa.Integer, nullable=False, server_default="0"),
        sa.Column("correct_answers", sa.Integer, nullable=False, server_default="0"),
        sa.Column("accuracy", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_time", sa.Float, nullable=False, server_default="0"),
        sa.Column("average_time", sa.Float, nullable=True),
        sa.Column("rank", sa.Integer, nullable=True),
        sa.Column("xp_earned", sa.Integer, nullable=False, server_default="0"),
        sa.Column("xp_breakdown", sa.JSON, nullable=True),
        _created_at("completed_at"),
        sa.UniqueConstraint("session_id", "user_id", name="uq_game_results_session_user"),
    )

    op.create_table(
        "session_events",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column(
            "session_id", sa.Integer, sa.ForeignKey("quiz_sessions.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        _user_fk(),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON, nullable=True),
        _created_at(),
    )

    # ── achievements ──────────────────────────────────────────────────────
    op.create_table(
        "achievement_definitions",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("icon", sa.String(50), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("rarity", sa.String(20), nullable=False),
        sa.Column("xp_reward", sa.Integer, nullable=False, server_default="0"),
        sa.Column("requirement_type", sa.String(50), nullable=False),
        sa.Column("requirement_value", sa.JSON, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        _user_fk(),
        sa.Column(
            "achievement_code", sa.String(64),
            sa.ForeignKey("achievement_definitions.code", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("progress", sa.JSON, nullable=True),
        sa.Column("xp_earned", sa.Integer, nullable=False, server_default="0"),
        _created_at("unlocked_at"),
        sa.UniqueConstraint("user_id", "achievement_code", name="uq_achievements_user_code"),
    )

    # ── documents / study_notes ───────────────────────────────────────────
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        _user_fk(),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(512), nullable=False),
        sa.Column("file_type", sa.String(50), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=False, server_default="0"),
        sa.Column("content_text", sa.Text, nullable=True),
        sa.Column("metadata_json", sa.JSON, nullable=True),
        _created_at(),
    )

    op.create_table(
        "study_notes",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        _user_fk(),
        sa.Column(
            "document_id", sa.Integer, sa.ForeignKey("documents.id", ondelete="SET NULL"),
            nullable=True, index=True,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("topic", sa.Text, nullable=True),
        sa.Column("content", sa.JSON, nullable=False),
        _created_at(),
    )

    # ── question / answer history ─────────────────────────────────────────
    op.create_table(
        "quiz_question_history",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        _user_fk(),
        sa.Column(
            "document_id", sa.Integer, sa.ForeignKey("documents.id", ondelete="SET NULL"),
            nullable=True, index=True,
        ),
        sa.Column("topic_hash", sa.String(32), nullable=True, index=True),
        sa.Column("question_text", sa.Text, nullable=False),
        sa.Column("question_type", sa.String(32), nullable=True),
        sa.Column("options", sa.JSON, nullable=True),
        sa.Column("correct_answer", sa.Text, nullable=True),
        sa.Column("explanation", sa.Text, nullable=True),
        _created_at("asked_at"),
    )

    op.create_table(
        "quiz_answer_history",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        _user_fk(),
        sa.Column(
            "question_history_id", sa.Integer,
            sa.ForeignKey("quiz_question_history.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column(
            "session_id", sa.Integer, sa.ForeignKey("quiz_sessions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("user_answer", sa.Text, nullable=True),
        sa.Column("is_correct", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("time_taken", sa.Float, nullable=True),
        _created_at("answered_at"),
    )


def downgrade() -> None:
    for table in (
        "quiz_answer_history",
        "quiz_question_history",
        "study_notes",
        "documents",
        "achievements",
        "achievement_definitions",
        "session_events",
        "game_results",
        "quiz_answers",
        "questions",
        "quiz_sessions",
        "clan_members",
        "clans",
        "room_members",
        "game_rooms",
        "player_stats",
        "users",
    ):
        op.drop_table(table)
