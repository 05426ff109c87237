import uuid
from sqlalchemy import Column, Integer, String, JSON, Boolean, ForeignKey
from models.base import Base, TimestampMixin

class Lesson(Base, TimestampMixin):
    __tablename__ = "lessons"

    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), default="", nullable=False)
    difficulty = Column(String(32), default="Beginner", nullable=False)
    xp_reward = Column(Integer, nullable=False)
    order = Column(Integer, default=0, nullable=False)
    module_key = Column(String(32), ForeignKey("modules.module_key"), index=True, nullable=True)
    is_default = Column(Boolean, default=False, index=True, nullable=False)
    owner_id = Column(String(255), index=True, nullable=True)

    # Ordered list of {text, options, correct_index, explanation, image_url, image_blob_ref}
    questions_json = Column(JSON, nullable=False, default=list)
