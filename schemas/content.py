"""
Content schemas for PolymerLearn.

Validated shapes for modules, lessons and their embedded questions.
Services validate instructor input with these before anything is persisted.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QuestionData(BaseModel):
    """A single multiple-choice question embedded in a lesson."""
    text: str = Field(..., min_length=1, max_length=1000, description="The question text")
    options: List[str] = Field(..., min_length=2, max_length=10, description="Answer options (2-10 items)")
    correct_index: int = Field(..., ge=0, description="Index of the correct answer (0-based)")
    explanation: str = Field("", max_length=2000)
    image_url: Optional[str] = Field(None, description="Direct image URL")
    image_blob_ref: Optional[str] = Field(None, description="Reference returned by the upload endpoint")

    @field_validator("text")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question text must not be empty")
        return value

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.correct_index >= len(self.options):
            raise ValueError(
                f"correct_index {self.correct_index} is out of range for {len(self.options)} options"
            )
        if self.image_url and self.image_blob_ref:
            raise ValueError("use either image_url or image_blob_ref, not both")
        return self


class LessonData(BaseModel):
    """Instructor input for creating or replacing a lesson."""
    title: str = Field(..., max_length=255)
    description: str = Field("", max_length=1000)
    difficulty: str = Field("Beginner", max_length=32)
    xp_reward: int = Field(..., gt=0, description="XP for a perfect score")
    order: int = 0
    module_key: Optional[str] = None
    questions: List[QuestionData] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value


class ModuleData(BaseModel):
    code: str = Field(..., max_length=64)
    title: str = Field(..., max_length=255)
    description: str = Field("", max_length=1000)
    color_theme: str = Field("indigo", max_length=32)
    icon_key: str = Field("atom", max_length=32)
    module_key: Optional[str] = None
    order: Optional[int] = None

    @field_validator("code", "title")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class ModuleUpdate(BaseModel):
    code: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    color_theme: Optional[str] = None
    icon_key: Optional[str] = None
    order: Optional[int] = None


class QuestionOut(QuestionData):
    resolved_image_url: Optional[str] = None


class LessonOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    difficulty: str
    xp_reward: int
    order: int
    module_key: Optional[str] = None
    is_default: bool
    owner_id: Optional[str] = None
    questions: List[QuestionOut] = Field(default_factory=list)


class ModuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    module_key: str
    code: str
    title: str
    description: str
    color_theme: str
    icon_key: str
    order: int
    is_default: bool
