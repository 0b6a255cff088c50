# lfa_studio/entities.py
from datetime import date, datetime, timezone
from typing import Optional, TypeAlias
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship


UUID: TypeAlias = str
Base = declarative_base()


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )


class User(Base, TimestampMixin):
    __tablename__ = "user"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str | None] = mapped_column(String(320), unique=True)
    name: Mapped[str | None] = mapped_column(String(200))

    # gamification ledger (per user, across projects)
    gamification_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    last_activity_date: Mapped[date | None] = mapped_column(Date)

    badges: Mapped[list["EarnedBadge"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", order_by="EarnedBadge.earned_at"
    )


class EarnedBadge(Base):
    __tablename__ = "earned_badge"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[UUID] = mapped_column(String(36), ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    badge_id: Mapped[str] = mapped_column(String(64), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    user: Mapped[User] = relationship(back_populates="badges")

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_earned_badge_user_badge"),
    )


class LfaProject(Base, TimestampMixin):
    __tablename__ = "lfa_project"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    theme: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT", server_default=text("'DRAFT'"))
    completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    # {"state": str, "districts": [str], "blocks": [str]}
    geography: Mapped[dict[str, object] | None] = mapped_column(JSON)
    impact: Mapped[str | None] = mapped_column(Text)

    created_by_id: Mapped[UUID | None] = mapped_column(String(36), ForeignKey("user.id", ondelete="SET NULL"))

    components: Mapped[list["LfaComponent"]] = relationship(
        back_populates="project", cascade="all, delete-orphan", order_by="LfaComponent.component_type"
    )
    progress: Mapped[Optional["ProjectProgress"]] = relationship(
        back_populates="project", cascade="all, delete-orphan", uselist=False
    )

    __table_args__ = (
        Index("ix_lfa_project_created_by_id", "created_by_id"),
    )


class LfaComponent(Base, TimestampMixin):
    __tablename__ = "lfa_component"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[UUID] = mapped_column(
        String(36), ForeignKey("lfa_project.id", ondelete="CASCADE"), nullable=False
    )
    component_type: Mapped[str] = mapped_column(String(40), nullable=False)
    content: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False, default=dict)
    is_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))

    project: Mapped[LfaProject] = relationship(back_populates="components")

    __table_args__ = (
        UniqueConstraint("project_id", "component_type", name="uq_lfa_component_project_type"),
    )


class VersionHistory(Base):
    """Append-only audit log of component edits. Never updated or pruned."""

    __tablename__ = "version_history"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[UUID] = mapped_column(
        String(36), ForeignKey("lfa_project.id", ondelete="CASCADE"), nullable=False
    )
    component_id: Mapped[UUID] = mapped_column(
        String(36), ForeignKey("lfa_component.id", ondelete="CASCADE"), nullable=False
    )
    changed_by_id: Mapped[UUID | None] = mapped_column(String(36))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_content: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False, default=dict)
    new_content: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False, default=dict)
    change_summary: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_version_history_component_id", "component_id"),
    )


class ProjectProgress(Base):
    __tablename__ = "project_progress"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[UUID] = mapped_column(
        String(36), ForeignKey("lfa_project.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_quest: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    completed_quests: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # {"1": 0..100, ...} JSON object keys are strings
    level_progress: Mapped[dict[str, int]] = mapped_column(JSON, nullable=False, default=dict)
    total_points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    project: Mapped[LfaProject] = relationship(back_populates="progress")
