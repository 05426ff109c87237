from fastapi import FastAPI, HTTPException, Depends, Query, Response, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.ext.asyncio import AsyncSession
from contextlib import asynccontextmanager
from pathlib import Path
import structlog
from pydantic import BaseModel, Field
from typing import List, Optional
from core.config import settings
from core.exceptions import PolymerLearnError, ValidationError
from db.session import get_db, get_redis
from api.auth import get_current_user, require_instructor
from schemas.content import LessonData, LessonOut, ModuleData, ModuleOut, ModuleUpdate
from schemas.progress import ClassStats, CompletionResult, ProgressOut, ReportRow, ResponseDistribution
from schemas.session import AdvanceResult, CheckResult, SessionOut
from services.analytics_service import AnalyticsService
from services.content_service import ContentService
from services.progress_service import ProgressService
from services.session_service import SessionService, session_view
from services.storage_service import BlobStorage
from utils.exporter import backup_filename, generate_backup_json

logger = structlog.get_logger()

API_DESCRIPTION = """
## PolymerLearn API

Quiz sessions, progress and class analytics for the PolymerLearn course.

### Authentication

Every endpoint except `/api/health` needs a signed token:

- Header: `X-Auth-Token: <token>`
- Or: `Authorization: Bearer <token>`

Instructor endpoints (`/api/teacher/...` and content writes) additionally
require the user id to be listed in `INSTRUCTOR_IDS`.

### Destructive operations

Resetting progress and removing a student are irreversible and must be sent
with `?confirm=true`.
"""

TAGS_METADATA = [
    {"name": "sessions", "description": "Taking a lesson: answer, check, advance, finish."},
    {"name": "progress", "description": "The current student's XP, streak and completed lessons."},
    {"name": "content", "description": "Modules, lessons and question images."},
    {"name": "teacher", "description": "Class analytics and student management."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    from core.logger import setup_logging
    from db.session import init_models, AsyncSessionLocal

    setup_logging()
    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    await init_models()
    async with AsyncSessionLocal() as db:
        await ContentService(db).initialize_defaults()
    logger.info("API started", env=settings.ENV)
    yield


app = FastAPI(
    title="PolymerLearn API",
    description=API_DESCRIPTION,
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    lifespan=lifespan,
)

if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(PolymerLearnError)
async def domain_error_handler(request: Request, exc: PolymerLearnError):
    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


# === Dependencies ===

def get_storage() -> BlobStorage:
    return BlobStorage()


def get_content_service(db: AsyncSession = Depends(get_db), storage: BlobStorage = Depends(get_storage)):
    return ContentService(db, storage)


def get_session_service(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    storage: BlobStorage = Depends(get_storage),
):
    return SessionService(db, redis, storage)


def require_confirmation(confirm: bool = False):
    if not confirm:
        raise HTTPException(status_code=400, detail="This action is irreversible. Repeat it with confirm=true.")


# === Request / response models ===

class StartSessionRequest(BaseModel):
    lesson_id: str = Field(..., description="Lesson to start")


class AnswerRequest(BaseModel):
    question_index: int = Field(..., ge=0)
    option_index: int = Field(..., ge=0)


class GoToRequest(BaseModel):
    question_index: int = Field(..., ge=0)


class NameRequest(BaseModel):
    user_name: str = Field(..., max_length=255)


class LessonSummary(BaseModel):
    id: str
    title: str
    description: str
    difficulty: str
    xp_reward: int
    order: int
    module_key: Optional[str] = None
    question_count: int
    completed: bool = False


class LeaderboardEntry(BaseModel):
    rank: int
    student_id: str
    name: str
    xp: int
    streak: int


class UploadResponse(BaseModel):
    blob_ref: str
    url: Optional[str] = None


class SuccessResponse(BaseModel):
    status: str = Field(default="success", description="Operation status")


# === Health ===

@app.get("/api/health", include_in_schema=False)
async def health():
    return {"status": "ok"}


# === Sessions ===

@app.post("/api/sessions", response_model=SessionOut, tags=["sessions"], summary="Start a lesson")
async def start_session(body: StartSessionRequest, user_id: str = Depends(get_current_user),
                        service: SessionService = Depends(get_session_service)):
    state = await service.start_lesson(user_id, body.lesson_id)
    return session_view(state)


@app.get("/api/sessions/{session_id}", response_model=SessionOut, tags=["sessions"])
async def get_session(session_id: str, user_id: str = Depends(get_current_user),
                      service: SessionService = Depends(get_session_service)):
    return session_view(await service.get_session(user_id, session_id))


@app.post("/api/sessions/{session_id}/answer", response_model=SessionOut, tags=["sessions"])
async def select_answer(session_id: str, body: AnswerRequest, user_id: str = Depends(get_current_user),
                        service: SessionService = Depends(get_session_service)):
    state = await service.select_answer(user_id, session_id, body.question_index, body.option_index)
    return session_view(state)


@app.post("/api/sessions/{session_id}/check", response_model=CheckResult, tags=["sessions"])
async def check_answer(session_id: str, user_id: str = Depends(get_current_user),
                       service: SessionService = Depends(get_session_service)):
    return await service.check_answer(user_id, session_id)


@app.post("/api/sessions/{session_id}/goto", response_model=SessionOut, tags=["sessions"])
async def go_to_question(session_id: str, body: GoToRequest, user_id: str = Depends(get_current_user),
                         service: SessionService = Depends(get_session_service)):
    return session_view(await service.go_to(user_id, session_id, body.question_index))


@app.post("/api/sessions/{session_id}/advance", response_model=AdvanceResult, tags=["sessions"])
async def advance(session_id: str, user_id: str = Depends(get_current_user),
                  service: SessionService = Depends(get_session_service)):
    return await service.advance(user_id, session_id)


@app.post("/api/sessions/{session_id}/retry", response_model=SessionOut, tags=["sessions"])
async def retry(session_id: str, user_id: str = Depends(get_current_user),
                service: SessionService = Depends(get_session_service)):
    return session_view(await service.retry(user_id, session_id))


@app.post("/api/sessions/{session_id}/finish", response_model=CompletionResult, tags=["sessions"])
async def finish(session_id: str, user_id: str = Depends(get_current_user),
                 service: SessionService = Depends(get_session_service)):
    return await service.finish(user_id, session_id)


@app.post("/api/sessions/{session_id}/discard", response_model=SuccessResponse, tags=["sessions"])
async def discard(session_id: str, user_id: str = Depends(get_current_user),
                  service: SessionService = Depends(get_session_service)):
    await service.discard(user_id, session_id)
    return {"status": "success"}


@app.delete("/api/sessions/{session_id}", response_model=SuccessResponse, tags=["sessions"])
async def exit_session(session_id: str, user_id: str = Depends(get_current_user),
                       service: SessionService = Depends(get_session_service)):
    await service.exit(user_id, session_id)
    return {"status": "success"}


# === Progress ===

@app.get("/api/progress/me", response_model=ProgressOut, tags=["progress"])
async def get_my_progress(user_id: str = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await ProgressService(db).get_own_progress(user_id)


@app.put("/api/progress/me/name", response_model=ProgressOut, tags=["progress"])
async def set_my_name(body: NameRequest, user_id: str = Depends(get_current_user),
                      db: AsyncSession = Depends(get_db)):
    return await ProgressService(db).set_user_name(user_id, body.user_name)


@app.delete("/api/progress/me", response_model=SuccessResponse, tags=["progress"],
            dependencies=[Depends(require_confirmation)])
async def reset_my_progress(user_id: str = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await ProgressService(db).reset_progress(user_id)
    return {"status": "success"}


@app.get("/api/progress/me/export", tags=["progress"], summary="Download a JSON backup")
async def export_my_progress(user_id: str = Depends(get_current_user), db: AsyncSession = Depends(get_db),
                             content: ContentService = Depends(get_content_service)):
    progress = await ProgressService(db).get_own_progress(user_id)
    lessons = [content.to_lesson_out(lesson).model_dump() for lesson in await content.list_lessons()]
    buffer = generate_backup_json(progress.model_dump(), lessons)
    return Response(
        content=buffer.getvalue(),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'},
    )


@app.get("/api/leaderboard", response_model=List[LeaderboardEntry], tags=["progress"])
async def leaderboard(limit: int = settings.LEADERBOARD_LIMIT, user_id: str = Depends(get_current_user),
                      db: AsyncSession = Depends(get_db)):
    limit = max(1, min(limit, 100))
    return await ProgressService(db).top_students(limit)


# === Content ===

@app.get("/api/modules", response_model=List[ModuleOut], tags=["content"])
async def list_modules(user_id: str = Depends(get_current_user),
                       content: ContentService = Depends(get_content_service)):
    return [ModuleOut.model_validate(m) for m in await content.list_modules()]


@app.post("/api/modules", response_model=ModuleOut, status_code=201, tags=["content"])
async def create_module(body: ModuleData, user_id: str = Depends(require_instructor),
                        content: ContentService = Depends(get_content_service)):
    return ModuleOut.model_validate(await content.create_module(body))


@app.put("/api/modules/{module_key}", response_model=ModuleOut, tags=["content"])
async def update_module(module_key: str, body: ModuleUpdate, user_id: str = Depends(require_instructor),
                        content: ContentService = Depends(get_content_service)):
    return ModuleOut.model_validate(await content.update_module(module_key, body))


@app.delete("/api/modules/{module_key}", response_model=SuccessResponse, tags=["content"])
async def delete_module(module_key: str, user_id: str = Depends(require_instructor),
                        content: ContentService = Depends(get_content_service)):
    await content.delete_module(module_key)
    return {"status": "success"}


@app.get("/api/lessons", response_model=List[LessonSummary], tags=["content"])
async def list_lessons(user_id: str = Depends(get_current_user), db: AsyncSession = Depends(get_db),
                       content: ContentService = Depends(get_content_service)):
    progress = await ProgressService(db).get_own_progress(user_id)
    completed = set(progress.completed_lesson_ids)
    return [{
        "id": lesson.id,
        "title": lesson.title,
        "description": lesson.description,
        "difficulty": lesson.difficulty,
        "xp_reward": lesson.xp_reward,
        "order": lesson.order,
        "module_key": lesson.module_key,
        "question_count": len(lesson.questions_json or []),
        "completed": lesson.id in completed,
    } for lesson in await content.list_lessons()]


@app.get("/api/lessons/{lesson_id}", response_model=LessonOut, tags=["content"])
async def get_lesson(lesson_id: str, user_id: str = Depends(require_instructor),
                     content: ContentService = Depends(get_content_service)):
    return content.to_lesson_out(await content.get_lesson(lesson_id))


@app.post("/api/lessons", response_model=LessonOut, status_code=201, tags=["content"])
async def create_lesson(body: LessonData, user_id: str = Depends(require_instructor),
                        content: ContentService = Depends(get_content_service)):
    lesson = await content.create_lesson(body, owner_id=user_id)
    return content.to_lesson_out(lesson)


@app.put("/api/lessons/{lesson_id}", response_model=LessonOut, tags=["content"])
async def update_lesson(lesson_id: str, body: LessonData, user_id: str = Depends(require_instructor),
                        content: ContentService = Depends(get_content_service)):
    return content.to_lesson_out(await content.update_lesson(lesson_id, body))


@app.delete("/api/lessons/{lesson_id}", response_model=SuccessResponse, tags=["content"],
            dependencies=[Depends(require_confirmation)])
async def delete_lesson(lesson_id: str, user_id: str = Depends(require_instructor),
                        content: ContentService = Depends(get_content_service)):
    await content.delete_lesson(lesson_id)
    return {"status": "success"}


@app.post("/api/lessons/defaults", response_model=SuccessResponse, tags=["content"])
async def initialize_defaults(user_id: str = Depends(require_instructor),
                              content: ContentService = Depends(get_content_service)):
    created = await content.initialize_defaults()
    return {"status": "created" if created else "exists"}


@app.post("/api/uploads", response_model=UploadResponse, status_code=201, tags=["content"],
          summary="Upload a question image", description="Send the raw image bytes as the request body.")
async def upload_blob(request: Request, user_id: str = Depends(require_instructor),
                      storage: BlobStorage = Depends(get_storage)):
    too_large = ValidationError(f"Uploaded file exceeds {settings.MAX_UPLOAD_SIZE_MB} MB")
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > storage.max_bytes:
        raise too_large

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > storage.max_bytes:
            raise too_large

    blob_ref = storage.put_blob(bytes(body))
    return {"blob_ref": blob_ref, "url": storage.get_url(blob_ref)}


# === Teacher ===

@app.get("/api/teacher/stats", response_model=ClassStats, tags=["teacher"])
async def class_stats(limit: Optional[int] = Query(None, ge=1), user_id: str = Depends(require_instructor),
                      db: AsyncSession = Depends(get_db)):
    return await AnalyticsService(db).class_stats(limit=limit)


@app.get("/api/teacher/students/{student_id}/progress", response_model=ProgressOut, tags=["teacher"])
async def student_progress(student_id: str, user_id: str = Depends(require_instructor),
                           db: AsyncSession = Depends(get_db)):
    return await ProgressService(db).get_progress(student_id)


@app.get("/api/teacher/students/{student_id}/report", response_model=List[ReportRow], tags=["teacher"])
async def student_report(student_id: str, user_id: str = Depends(require_instructor),
                         db: AsyncSession = Depends(get_db)):
    return await AnalyticsService(db).student_report(student_id)


@app.delete("/api/teacher/students/{student_id}", response_model=SuccessResponse, tags=["teacher"],
            dependencies=[Depends(require_confirmation)])
async def remove_student(student_id: str, user_id: str = Depends(require_instructor),
                         db: AsyncSession = Depends(get_db)):
    await ProgressService(db).remove_student(student_id)
    return {"status": "success"}


@app.get("/api/teacher/lessons/{lesson_id}/questions/{question_index}/distribution",
         response_model=ResponseDistribution, tags=["teacher"])
async def response_distribution(lesson_id: str, question_index: int, user_id: str = Depends(require_instructor),
                                db: AsyncSession = Depends(get_db)):
    return await AnalyticsService(db).question_response_distribution(lesson_id, question_index)


app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")
