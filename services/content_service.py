import uuid
from typing import List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from constants.defaults import DEFAULT_LESSONS, DEFAULT_MODULES, RESERVED_MODULE_KEYS
from core.config import settings
from core.exceptions import Conflict, NotFound, ValidationError
from core.logger import logger
from models.lesson import Lesson
from models.module import Module
from schemas.content import LessonData, LessonOut, ModuleData, ModuleUpdate, QuestionOut
from services.storage_service import BlobStorage
from utils.common import slugify_key


def validate_input(model_cls, data):
    """Turn raw dicts into validated schema objects, raising our ValidationError."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        errors = [{"loc": [str(part) for part in err["loc"]], "msg": err["msg"]} for err in e.errors()]
        first = errors[0]["msg"] if errors else "invalid input"
        raise ValidationError(f"Invalid {model_cls.__name__}: {first}", errors=errors)


def _blob_refs(questions_json: list) -> set:
    return {q.get("image_blob_ref") for q in questions_json or [] if q.get("image_blob_ref")}


class ContentService:
    def __init__(self, db: AsyncSession, storage: Optional[BlobStorage] = None):
        self.db = db
        self.storage = storage or BlobStorage()

    # --- Modules ---

    async def list_modules(self) -> List[Module]:
        result = await self.db.execute(select(Module).order_by(Module.order.asc(), Module.module_key.asc()))
        return list(result.scalars().all())

    async def get_module(self, module_key: str) -> Module:
        result = await self.db.execute(select(Module).filter(Module.module_key == module_key))
        module = result.scalar_one_or_none()
        if not module:
            raise NotFound(f"Module {module_key} not found")
        return module

    async def create_module(self, data: Union[ModuleData, dict]) -> Module:
        data = validate_input(ModuleData, data)
        module_key = slugify_key(data.module_key or "") or slugify_key(data.code)
        if not module_key:
            raise ValidationError("Invalid module key")
        if module_key in RESERVED_MODULE_KEYS:
            raise Conflict("That module key is reserved")

        existing = (await self.db.execute(select(Module.module_key))).scalars().all()
        if module_key in existing:
            raise Conflict("A module with that key already exists")

        order = data.order
        if order is None:
            max_order = (await self.db.execute(select(func.max(Module.order)))).scalar() or 0
            order = max_order + 1

        module = Module(
            id=uuid.uuid4().hex,
            module_key=module_key,
            code=data.code,
            title=data.title,
            description=data.description.strip(),
            color_theme=data.color_theme.strip(),
            icon_key=(data.icon_key or "atom").strip(),
            order=order,
            is_default=False,
        )
        self.db.add(module)
        await self.db.commit()
        logger.info("Module created", module_key=module_key)
        return module

    async def update_module(self, module_key: str, data: Union[ModuleUpdate, dict]) -> Module:
        data = validate_input(ModuleUpdate, data)
        module = await self.get_module(module_key)
        for key, value in data.model_dump(exclude_none=True).items():
            if isinstance(value, str):
                value = value.strip()
                if key in ("code", "title") and not value:
                    raise ValidationError(f"{key} must not be empty")
            setattr(module, key, value)
        await self.db.commit()
        logger.info("Module updated", module_key=module_key)
        return module

    async def delete_module(self, module_key: str):
        """Delete a module unless a lesson still points at it.

        The module row stays locked between the reference count and the delete,
        and lesson writes lock the same row, so the check cannot go stale.
        """
        result = await self.db.execute(
            select(Module).filter(Module.module_key == module_key).with_for_update()
        )
        module = result.scalar_one_or_none()
        if not module:
            raise NotFound(f"Module {module_key} not found")
        if module.is_default:
            raise Conflict("Default modules cannot be deleted")

        count_q = select(func.count(Lesson.id)).filter(Lesson.module_key == module_key)
        in_use = (await self.db.execute(count_q)).scalar() or 0
        if in_use:
            raise Conflict(f"Module {module_key} is still used by {in_use} lesson(s)")

        await self.db.delete(module)
        await self.db.commit()
        logger.info("Module deleted", module_key=module_key)

    async def _lock_module(self, module_key: Optional[str]):
        if not module_key:
            return
        result = await self.db.execute(
            select(Module).filter(Module.module_key == module_key).with_for_update()
        )
        if result.scalar_one_or_none() is None:
            raise ValidationError(f"Unknown module: {module_key}")

    # --- Lessons ---

    async def list_lessons(self) -> List[Lesson]:
        result = await self.db.execute(select(Lesson).order_by(Lesson.order.asc(), Lesson.title.asc()))
        return list(result.scalars().all())

    async def count_lessons(self) -> int:
        return int((await self.db.execute(select(func.count(Lesson.id)))).scalar() or 0)

    async def get_lesson(self, lesson_id: str) -> Lesson:
        result = await self.db.execute(select(Lesson).filter(Lesson.id == lesson_id))
        lesson = result.scalar_one_or_none()
        if not lesson:
            raise NotFound(f"Lesson {lesson_id} not found")
        return lesson

    def _questions_json(self, data: LessonData) -> list:
        if len(data.questions) > settings.MAX_QUESTIONS_PER_LESSON:
            raise ValidationError(f"A lesson may have at most {settings.MAX_QUESTIONS_PER_LESSON} questions")
        questions = []
        for i, q in enumerate(data.questions):
            if q.image_blob_ref and self.storage.get_url(q.image_blob_ref) is None:
                raise ValidationError(f"Question {i}: image {q.image_blob_ref} was not uploaded")
            questions.append(q.model_dump())
        return questions

    async def create_lesson(self, data: Union[LessonData, dict], owner_id: Optional[str] = None,
                            lesson_id: Optional[str] = None, is_default: bool = False) -> Lesson:
        data = validate_input(LessonData, data)
        questions = self._questions_json(data)
        await self._lock_module(data.module_key)

        lesson = Lesson(
            id=lesson_id or uuid.uuid4().hex,
            title=data.title,
            description=data.description,
            difficulty=data.difficulty,
            xp_reward=data.xp_reward,
            order=data.order,
            module_key=data.module_key,
            is_default=is_default,
            owner_id=owner_id,
            questions_json=questions,
        )
        self.db.add(lesson)
        await self.db.commit()
        logger.info("Lesson created", lesson_id=lesson.id, questions=len(questions), owner_id=owner_id)
        return lesson

    async def update_lesson(self, lesson_id: str, data: Union[LessonData, dict]) -> Lesson:
        """Replace a lesson's fields and its whole question set in one commit."""
        data = validate_input(LessonData, data)
        questions = self._questions_json(data)
        lesson = await self.get_lesson(lesson_id)
        await self._lock_module(data.module_key)

        released = _blob_refs(lesson.questions_json) - _blob_refs(questions)

        lesson.title = data.title
        lesson.description = data.description
        lesson.difficulty = data.difficulty
        lesson.xp_reward = data.xp_reward
        lesson.order = data.order
        lesson.module_key = data.module_key
        lesson.questions_json = questions
        await self.db.commit()
        logger.info("Lesson updated", lesson_id=lesson_id, questions=len(questions))

        await self._release_blobs(released)
        return lesson

    async def delete_lesson(self, lesson_id: str):
        lesson = await self.get_lesson(lesson_id)
        released = _blob_refs(lesson.questions_json)
        await self.db.delete(lesson)
        await self.db.commit()
        logger.info("Lesson deleted", lesson_id=lesson_id)
        await self._release_blobs(released)

    async def _release_blobs(self, refs: set):
        if not refs:
            return
        still_used = set()
        for other in await self.list_lessons():
            still_used |= _blob_refs(other.questions_json)
        for ref in refs - still_used:
            self.storage.delete_blob(ref)

    async def initialize_defaults(self) -> bool:
        """Seed default modules and lessons. Returns False when they already exist."""
        existing = await self.db.execute(select(Lesson.id).filter(Lesson.is_default == True).limit(1))
        if existing.scalar_one_or_none() is not None:
            return False

        known_keys = set((await self.db.execute(select(Module.module_key))).scalars().all())
        for module in DEFAULT_MODULES:
            if module["module_key"] not in known_keys:
                self.db.add(Module(id=uuid.uuid4().hex, is_default=True, **module))
        await self.db.flush()

        for raw in DEFAULT_LESSONS:
            data = validate_input(LessonData, raw)
            self.db.add(Lesson(
                id=uuid.uuid4().hex,
                title=data.title,
                description=data.description,
                difficulty=data.difficulty,
                xp_reward=data.xp_reward,
                order=data.order,
                module_key=data.module_key,
                is_default=True,
                questions_json=[q.model_dump() for q in data.questions],
            ))
        await self.db.commit()
        logger.info("Default content initialized", modules=len(DEFAULT_MODULES), lessons=len(DEFAULT_LESSONS))
        return True

    def resolve_image_url(self, question: dict) -> Optional[str]:
        if question.get("image_url"):
            return question["image_url"]
        if question.get("image_blob_ref"):
            return self.storage.get_url(question["image_blob_ref"])
        return None

    def to_lesson_out(self, lesson: Lesson) -> LessonOut:
        questions = [
            QuestionOut(**q, resolved_image_url=self.resolve_image_url(q))
            for q in lesson.questions_json or []
        ]
        return LessonOut(
            id=lesson.id,
            title=lesson.title,
            description=lesson.description,
            difficulty=lesson.difficulty,
            xp_reward=lesson.xp_reward,
            order=lesson.order,
            module_key=lesson.module_key,
            is_default=lesson.is_default,
            owner_id=lesson.owner_id,
            questions=questions,
        )
