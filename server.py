import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from lfa_studio.app_config import LOGGER_NAME, Settings, configure_logging, load_settings
from lfa_studio.exceptions import (
    LfaStudioError,
    NotFoundError,
    OutOfOrderQuestError,
    PersistenceError,
    PreconditionError,
)
from lfa_studio.studio_service import StudioService

logger = logging.getLogger(f"{LOGGER_NAME}.server")


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class CreateProjectBody(_Body):
    title: str
    theme: str
    geography: Optional[dict[str, Any]] = None
    impact: Optional[str] = None


class UpdateProjectBody(_Body):
    title: Optional[str] = None
    theme: Optional[str] = None
    status: Optional[str] = None
    geography: Optional[dict[str, Any]] = None
    impact: Optional[str] = None


class CompleteQuestBody(_Body):
    level_id: int
    quest_id: str


class MovePointerBody(_Body):
    current_level: Optional[int] = None
    current_quest: Optional[int] = None


class UpdateComponentBody(_Body):
    component_id: str
    content: Any = Field(default_factory=dict)
    is_complete: Optional[bool] = None
    change_summary: Optional[str] = None


class ValidateBody(_Body):
    project_id: str
    validation_type: str = "full"


def build_default_service(settings: Settings) -> StudioService:
    # imported here so the app (and its tests) can be built without cloud SDK credentials
    from lfa_studio.component_store import ComponentStore
    from lfa_studio.db_connection_hlpr import DbConnection
    from lfa_studio.llm_assessor import LlmAssessor
    from lfa_studio.llm_client import build_chat_llm
    from lfa_studio.validation_aggregator import ValidationAggregator

    db = DbConnection(settings)
    db.create_schema()
    store = ComponentStore(db.build_db_session_factory())
    chat_llm = build_chat_llm(settings)
    # same client repairs answers the JSON parser cannot salvage
    aggregator = ValidationAggregator(LlmAssessor(chat_llm, repair_llm=chat_llm))
    return StudioService(store, aggregator)


def _error(status_code: int, exc: LfaStudioError, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": exc.user_message, "details": detail if detail is not None else str(exc)},
    )


def create_app(service: StudioService | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="LFA Design Studio")
    app.state.service = service
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_service(request: Request) -> StudioService:
        if request.app.state.service is None:
            logger.info("Building studio service (model %s)", settings.llm_model)
            request.app.state.service = build_default_service(settings)
        return request.app.state.service

    # -----------------------
    # Error mapping
    # -----------------------

    @app.exception_handler(OutOfOrderQuestError)
    async def _out_of_order(request: Request, exc: OutOfOrderQuestError):
        return _error(409, exc)

    @app.exception_handler(PreconditionError)
    async def _precondition(request: Request, exc: PreconditionError):
        return _error(400, exc)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, exc)

    @app.exception_handler(PersistenceError)
    async def _persistence(request: Request, exc: PersistenceError):
        # internal details stay in the log
        return _error(503, exc, detail="")

    # -----------------------
    # Projects
    # -----------------------

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/projects", status_code=201)
    def create_project(
        body: CreateProjectBody,
        svc: StudioService = Depends(get_service),
        x_user_id: Optional[str] = Header(default=None),
    ):
        project = svc.create_project(body.title, body.theme, body.geography, user_id=x_user_id, impact=body.impact)
        return {"success": True, "data": project.to_dict()}

    @app.get("/projects")
    def list_projects(
        status: Optional[str] = None,
        theme: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        mine: bool = False,
        svc: StudioService = Depends(get_service),
        x_user_id: Optional[str] = Header(default=None),
    ):
        result = svc.list_projects(
            status=status,
            theme=theme,
            page=page,
            page_size=limit,
            created_by=x_user_id if mine else None,
        )
        return {"success": True, "data": result.to_dict()}

    @app.get("/projects/{project_id}")
    def get_project(project_id: str, svc: StudioService = Depends(get_service)):
        return {"success": True, "data": svc.get_project(project_id)}

    @app.put("/projects/{project_id}")
    def update_project(project_id: str, body: UpdateProjectBody, svc: StudioService = Depends(get_service)):
        project = svc.update_project(
            project_id,
            title=body.title,
            theme=body.theme,
            status=body.status,
            geography=body.geography,
            impact=body.impact,
        )
        return {"success": True, "message": "Project updated successfully", "data": project.to_dict()}

    @app.delete("/projects/{project_id}")
    def delete_project(project_id: str, svc: StudioService = Depends(get_service)):
        svc.delete_project(project_id)
        return {"success": True, "message": "Project deleted successfully"}

    # -----------------------
    # Progress
    # -----------------------

    @app.get("/projects/{project_id}/progress")
    def get_progress(project_id: str, svc: StudioService = Depends(get_service)):
        return {"success": True, "data": svc.get_progress(project_id).to_dict()}

    @app.post("/projects/{project_id}/quests/complete")
    def complete_quest(
        project_id: str,
        body: CompleteQuestBody,
        svc: StudioService = Depends(get_service),
        x_user_id: Optional[str] = Header(default=None),
    ):
        outcome = svc.complete_quest(project_id, body.level_id, body.quest_id, user_id=x_user_id)
        return {"success": True, "data": outcome.to_dict()}

    @app.put("/projects/{project_id}/progress")
    def move_pointer(project_id: str, body: MovePointerBody, svc: StudioService = Depends(get_service)):
        progress = svc.override_position(project_id, level_id=body.current_level, quest_number=body.current_quest)
        return {"success": True, "message": "Progress updated successfully", "data": progress.to_dict()}

    @app.get("/projects/{project_id}/journey")
    def journey_map(project_id: str, svc: StudioService = Depends(get_service)):
        return {"success": True, "data": svc.get_journey_map(project_id)}

    # -----------------------
    # Components
    # -----------------------

    @app.get("/projects/{project_id}/components")
    def get_components(project_id: str, svc: StudioService = Depends(get_service)):
        return {"success": True, "data": [c.to_dict() for c in svc.get_components(project_id)]}

    @app.put("/projects/{project_id}/components")
    def update_component(
        project_id: str,
        body: UpdateComponentBody,
        svc: StudioService = Depends(get_service),
        x_user_id: Optional[str] = Header(default=None),
    ):
        data = svc.update_component(
            project_id,
            body.component_id,
            body.content,
            is_complete=body.is_complete,
            user_id=x_user_id,
            change_summary=body.change_summary,
        )
        return {"success": True, "data": data}

    @app.get("/projects/{project_id}/history")
    def version_history(
        project_id: str,
        component_id: Optional[str] = None,
        svc: StudioService = Depends(get_service),
    ):
        entries = svc.get_version_history(project_id, component_id)
        return {"success": True, "data": [e.to_dict() for e in entries]}

    # -----------------------
    # Validation
    # -----------------------

    @app.post("/ai/validate")
    async def validate(body: ValidateBody, svc: StudioService = Depends(get_service)):
        result = await svc.validate_project(body.project_id, body.validation_type)
        return {"success": True, **result}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
