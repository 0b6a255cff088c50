# lfa_studio/component_store.py
"""
SQLAlchemy-backed persistence for projects, components, progress and the
per-user gamification ledger.

Every write runs in one session and one transaction. A SQLAlchemyError rolls
the whole unit back and surfaces as PersistenceError; nothing is retried here.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from lfa_studio.completion_calculator import completion_percentage, status_for_percentage
from lfa_studio.component_content import validate_component_content
from lfa_studio.entities import (
    EarnedBadge,
    LfaComponent,
    LfaProject,
    ProjectProgress,
    User,
    VersionHistory,
)
from lfa_studio.exceptions import LfaStudioError, NotFoundError, PersistenceError
from lfa_studio.gamification_ledger import EarnedBadgeEntry, GamificationLedger, LedgerState
from lfa_studio.journey import DEFAULT_CATALOG, JourneyCatalog
from lfa_studio.lfa_types import COMPONENT_TYPES, ProjectStatus
from lfa_studio.progress_tracker import ProgressSnapshot
from lfa_studio.streaks import as_utc

logger = logging.getLogger("lfa_studio.store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_value(value) -> str:
    return str(getattr(value, "value", value))


def _iso(moment: datetime | None) -> str | None:
    return as_utc(moment).isoformat() if moment else None


@dataclass(frozen=True)
class ProjectSnapshot:
    id: str
    title: str
    theme: str
    status: str
    completion_percentage: int
    geography: dict | None = None
    impact: str | None = None
    created_by_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "theme": self.theme,
            "status": self.status,
            "completionPercentage": self.completion_percentage,
            "geography": self.geography,
            "impact": self.impact,
            "createdById": self.created_by_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class ComponentSnapshot:
    id: str
    project_id: str
    component_type: str
    content: dict = field(default_factory=dict)
    is_complete: bool = False
    version: int = 1
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "componentType": self.component_type,
            "content": self.content,
            "isComplete": self.is_complete,
            "version": self.version,
            "updatedAt": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class VersionEntry:
    id: str
    component_id: str
    version: int
    previous_content: dict
    new_content: dict
    changed_by_id: str | None
    change_summary: str | None
    created_at: datetime | None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "componentId": self.component_id,
            "version": self.version,
            "previousContent": self.previous_content,
            "newContent": self.new_content,
            "changedById": self.changed_by_id,
            "changeSummary": self.change_summary,
            "createdAt": _iso(self.created_at),
        }


@dataclass(frozen=True)
class ProjectPage:
    items: list[ProjectSnapshot]
    total: int
    page: int
    page_size: int

    def to_dict(self) -> dict:
        pages = (self.total + self.page_size - 1) // self.page_size if self.page_size else 0
        return {
            "projects": [p.to_dict() for p in self.items],
            "pagination": {"page": self.page, "limit": self.page_size, "total": self.total, "pages": pages},
        }


# -----------------------
# Row <-> snapshot conversion
# -----------------------

def _project_snapshot(row: LfaProject) -> ProjectSnapshot:
    return ProjectSnapshot(
        id=row.id,
        title=row.title,
        theme=row.theme,
        status=row.status,
        completion_percentage=row.completion_percentage,
        geography=dict(row.geography) if row.geography else None,
        impact=row.impact,
        created_by_id=row.created_by_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _component_snapshot(row: LfaComponent) -> ComponentSnapshot:
    return ComponentSnapshot(
        id=row.id,
        project_id=row.project_id,
        component_type=row.component_type,
        content=dict(row.content or {}),
        is_complete=bool(row.is_complete),
        version=row.version,
        updated_at=row.updated_at,
    )


def _progress_snapshot(row: ProjectProgress) -> ProgressSnapshot:
    return ProgressSnapshot(
        current_level=row.current_level,
        current_quest=row.current_quest,
        completed_quests=tuple(row.completed_quests or ()),
        total_points_earned=row.total_points_earned,
        streak_days=row.streak_days,
        last_activity_at=as_utc(row.last_activity_at) if row.last_activity_at else None,
        level_progress={int(k): int(v) for k, v in (row.level_progress or {}).items()},
    )


def _write_progress(row: ProjectProgress, progress: ProgressSnapshot) -> None:
    # JSON columns are reassigned, never mutated in place, so the change is tracked
    row.current_level = progress.current_level
    row.current_quest = progress.current_quest
    row.completed_quests = list(progress.completed_quests)
    row.level_progress = {str(k): v for k, v in progress.level_progress.items()}
    row.total_points_earned = progress.total_points_earned
    row.streak_days = progress.streak_days
    row.last_activity_at = progress.last_activity_at or _utcnow()


class ComponentStore:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        catalog: JourneyCatalog | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.SessionFactory = session_factory
        self.catalog = catalog or DEFAULT_CATALOG
        self._clock = clock

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        session = self.SessionFactory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("[DB] %s failed, transaction rolled back: %s", operation, e)
            raise PersistenceError(f"{operation} failed") from e
        except LfaStudioError:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _read(self, operation: str) -> Iterator[Session]:
        session = self.SessionFactory()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error("[DB] %s failed: %s", operation, e)
            raise PersistenceError(f"{operation} failed") from e
        finally:
            session.close()

    def _ensure_user(self, session: Session, user_id: str | None, lock: bool = False) -> User | None:
        if not user_id:
            return None
        user = session.get(User, user_id, with_for_update=lock)
        if user is None:
            try:
                with session.begin_nested():
                    user = User(id=user_id)
                    session.add(user)
            except IntegrityError:
                # another request created the row first
                user = session.get(User, user_id, with_for_update=lock)
        return user

    def _get_project_row(self, session: Session, project_id: str) -> LfaProject:
        project = session.query(LfaProject).filter(LfaProject.id == str(project_id)).one_or_none()
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    def _recompute_completion(self, session: Session, project: LfaProject) -> int:
        components = session.query(LfaComponent).filter(LfaComponent.project_id == project.id).all()
        pct = completion_percentage(components)
        project.completion_percentage = pct
        project.status = status_for_percentage(pct).value
        project.updated_at = self._clock()
        return pct

    # -----------------------
    # Projects
    # -----------------------

    def create_project(
        self,
        title: str,
        theme: str,
        geography: dict | None = None,
        created_by_id: str | None = None,
        impact: str | None = None,
    ) -> ProjectSnapshot:
        """
        Project (DRAFT), its progress row at (1, 1) and one empty component per
        type, all in one transaction.
        """
        now = self._clock()
        with self._unit_of_work("create_project") as session:
            self._ensure_user(session, created_by_id)
            project = LfaProject(
                title=title,
                theme=_enum_value(theme),
                status=ProjectStatus.DRAFT.value,
                completion_percentage=0,
                geography=dict(geography) if geography else None,
                impact=impact,
                created_by_id=created_by_id,
            )
            session.add(project)
            session.flush()

            session.add(
                ProjectProgress(
                    project_id=project.id,
                    current_level=1,
                    current_quest=1,
                    completed_quests=[],
                    level_progress={str(lvl.level): 0 for lvl in self.catalog.levels},
                    total_points_earned=0,
                    streak_days=0,
                    last_activity_at=now,
                )
            )
            for ctype in COMPONENT_TYPES:
                session.add(LfaComponent(project_id=project.id, component_type=ctype.value, content={}))
            session.flush()
            snapshot = _project_snapshot(project)

        logger.info("[DB] Project %s created (%s)", snapshot.id, snapshot.title)
        return snapshot

    def get_project(self, project_id: str) -> ProjectSnapshot:
        with self._read("get_project") as session:
            return _project_snapshot(self._get_project_row(session, project_id))

    def update_project(
        self,
        project_id: str,
        title: str | None = None,
        theme: str | None = None,
        status: str | None = None,
        geography: dict | None = None,
        impact: str | None = None,
    ) -> ProjectSnapshot:
        """Header fields only; None leaves a field as it is."""
        with self._unit_of_work("update_project") as session:
            project = self._get_project_row(session, project_id)
            if title is not None:
                project.title = title
            if theme is not None:
                project.theme = _enum_value(theme)
            if status is not None:
                project.status = _enum_value(status)
            if geography is not None:
                project.geography = dict(geography)
            if impact is not None:
                project.impact = impact
            project.updated_at = self._clock()
            session.flush()
            snapshot = _project_snapshot(project)

        logger.info("[DB] Project %s updated", project_id)
        return snapshot

    def delete_project(self, project_id: str) -> None:
        """Project with its components, progress and version history."""
        with self._unit_of_work("delete_project") as session:
            project = self._get_project_row(session, project_id)
            # history has no ORM relationship, and SQLite only honours ON DELETE with foreign keys on
            session.query(VersionHistory).filter(VersionHistory.project_id == project.id).delete(
                synchronize_session=False
            )
            session.delete(project)

        logger.info("[DB] Project %s deleted", project_id)

    def list_projects(
        self,
        status: str | None = None,
        theme: str | None = None,
        page: int = 1,
        page_size: int = 10,
        created_by: str | None = None,
    ) -> ProjectPage:
        page = max(1, int(page))
        page_size = max(1, min(int(page_size), 100))
        with self._read("list_projects") as session:
            query = session.query(LfaProject)
            if status:
                query = query.filter(LfaProject.status == _enum_value(status))
            if theme:
                query = query.filter(LfaProject.theme == _enum_value(theme))
            if created_by:
                query = query.filter(LfaProject.created_by_id == str(created_by))
            total = query.count()
            rows = (
                query.order_by(LfaProject.updated_at.desc(), LfaProject.id)
                .offset((page - 1) * page_size)
                .limit(page_size)
                .all()
            )
            return ProjectPage(
                items=[_project_snapshot(r) for r in rows],
                total=total,
                page=page,
                page_size=page_size,
            )

    # -----------------------
    # Components
    # -----------------------

    def get_components(self, project_id: str) -> list[ComponentSnapshot]:
        with self._read("get_components") as session:
            self._get_project_row(session, project_id)
            rows = (
                session.query(LfaComponent)
                .filter(LfaComponent.project_id == str(project_id))
                .all()
            )
            order = {ctype.value: i for i, ctype in enumerate(COMPONENT_TYPES)}
            rows.sort(key=lambda r: order.get(r.component_type, len(order)))
            return [_component_snapshot(r) for r in rows]

    def update_component(
        self,
        project_id: str,
        component_id: str,
        content: Any,
        is_complete: bool | None = None,
        editor_id: str | None = None,
        change_summary: str | None = None,
    ) -> tuple[ComponentSnapshot, bool]:
        """
        Replace a component's content, bump its version, append a history row and
        recompute the project's completion percentage/status. All four writes
        commit together or not at all.
        """
        with self._unit_of_work("update_component") as session:
            component = (
                session.query(LfaComponent)
                .filter(LfaComponent.id == str(component_id), LfaComponent.project_id == str(project_id))
                .one_or_none()
            )
            if component is None:
                raise NotFoundError(f"Component {component_id} not found in project {project_id}")
            new_content = validate_component_content(component.component_type, content)
            previous = dict(component.content or {})

            component.content = new_content
            if is_complete is not None:
                component.is_complete = bool(is_complete)
            # evaluated by the database so concurrent writers each get their own bump
            component.version = LfaComponent.version + 1
            component.updated_at = self._clock()
            session.flush()
            session.refresh(component, ["version"])

            session.add(
                VersionHistory(
                    project_id=component.project_id,
                    component_id=component.id,
                    changed_by_id=editor_id,
                    version=component.version,
                    previous_content=previous,
                    new_content=new_content,
                    change_summary=change_summary or f"Updated {component.component_type}",
                    created_at=self._clock(),
                )
            )
            pct = self._recompute_completion(session, component.project)
            session.flush()
            snapshot = _component_snapshot(component)

        logger.info(
            "[DB] Component %s -> v%d (project %s now %d%%)",
            snapshot.component_type, snapshot.version, project_id, pct,
        )
        return snapshot, True

    def get_version_history(self, project_id: str, component_id: str | None = None, limit: int = 50) -> list[VersionEntry]:
        with self._read("get_version_history") as session:
            self._get_project_row(session, project_id)
            query = session.query(VersionHistory).filter(VersionHistory.project_id == str(project_id))
            if component_id:
                query = query.filter(VersionHistory.component_id == str(component_id))
            rows = query.order_by(VersionHistory.created_at.desc(), VersionHistory.version.desc()).limit(limit).all()
            return [
                VersionEntry(
                    id=r.id,
                    component_id=r.component_id,
                    version=r.version,
                    previous_content=dict(r.previous_content or {}),
                    new_content=dict(r.new_content or {}),
                    changed_by_id=r.changed_by_id,
                    change_summary=r.change_summary,
                    created_at=r.created_at,
                )
                for r in rows
            ]

    # -----------------------
    # Progress
    # -----------------------

    def get_progress(self, project_id: str) -> ProgressSnapshot:
        with self._read("get_progress") as session:
            row = (
                session.query(ProjectProgress)
                .filter(ProjectProgress.project_id == str(project_id))
                .one_or_none()
            )
            if row is None:
                raise NotFoundError(f"Progress not found for project {project_id}")
            return _progress_snapshot(row)

    def save_progress(self, project_id: str, progress: ProgressSnapshot) -> ProgressSnapshot:
        with self._unit_of_work("save_progress") as session:
            row = (
                session.query(ProjectProgress)
                .filter(ProjectProgress.project_id == str(project_id))
                .one_or_none()
            )
            if row is None:
                raise NotFoundError(f"Progress not found for project {project_id}")
            _write_progress(row, progress)
            session.flush()
            return _progress_snapshot(row)

    # -----------------------
    # Gamification ledger
    # -----------------------

    def load_ledger(self, user_id: str | None) -> LedgerState:
        if not user_id:
            return LedgerState()
        with self._read("load_ledger") as session:
            user = session.get(User, user_id)
            if user is None:
                return LedgerState()
            return LedgerState(
                total_points=user.gamification_points,
                earned_badges=[EarnedBadgeEntry(badge_id=b.badge_id, earned_at=b.earned_at) for b in user.badges],
                streak_days=user.streak_days,
                last_activity_date=user.last_activity_date,
            )

    def _apply_ledger(self, session: Session, user: User, ledger: GamificationLedger) -> None:
        """
        Fold a ledger built outside this transaction into the locked user row.
        Points land as a delta so concurrent completions add up; a badge or a
        streak day another session already stored is not counted twice.
        """
        held = {
            badge_id
            for (badge_id,) in session.query(EarnedBadge.badge_id).filter(EarnedBadge.user_id == user.id)
        }
        already_held: set[str] = set()
        for entry in ledger.newly_awarded:
            if entry.badge_id in held:
                already_held.add(entry.badge_id)
                continue
            try:
                with session.begin_nested():
                    session.add(EarnedBadge(user_id=user.id, badge_id=entry.badge_id, earned_at=entry.earned_at))
            except IntegrityError:
                logger.info("[DB] Badge %s for user %s was stored concurrently", entry.badge_id, user.id)
                already_held.add(entry.badge_id)
        delta = ledger.points_added - len(already_held) * ledger.badge_bonus

        streak_taken = (
            ledger.streak_counted_on is not None
            and user.last_activity_date is not None
            and user.last_activity_date >= ledger.streak_counted_on
        )
        if streak_taken:
            delta -= ledger.streak_bonus_added
        elif ledger.streak_counted_on is not None:
            user.streak_days = ledger.state.streak_days
            user.last_activity_date = ledger.state.last_activity_date

        user.gamification_points = User.gamification_points + delta
        session.flush()
        session.refresh(user, ["gamification_points", "streak_days", "last_activity_date"])
        ledger.reconcile(
            user.gamification_points,
            already_held,
            streak_days=user.streak_days if streak_taken else None,
            last_activity_date=user.last_activity_date if streak_taken else None,
        )

    def save_quest_completion(
        self,
        project_id: str,
        progress: ProgressSnapshot,
        user_id: str | None = None,
        ledger: GamificationLedger | None = None,
        points_awarded: int | None = None,
    ) -> ProgressSnapshot:
        """
        Progress row, user ledger and new badges in one transaction. With
        `points_awarded` the project's point total is bumped in SQL rather than
        overwritten from the snapshot.
        """
        with self._unit_of_work("save_quest_completion") as session:
            project = self._get_project_row(session, project_id)
            row = (
                session.query(ProjectProgress)
                .filter(ProjectProgress.project_id == project.id)
                .with_for_update()
                .one_or_none()
            )
            if row is None:
                raise NotFoundError(f"Progress not found for project {project_id}")
            _write_progress(row, progress)
            if points_awarded is not None:
                row.total_points_earned = ProjectProgress.total_points_earned + points_awarded
            session.flush()
            session.refresh(row, ["total_points_earned"])

            user = self._ensure_user(session, user_id, lock=True)
            if user is not None and ledger is not None:
                self._apply_ledger(session, user, ledger)

            self._recompute_completion(session, project)
            session.flush()
            return _progress_snapshot(row)
