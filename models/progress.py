from sqlalchemy import Column, Integer, String, JSON
from models.base import Base, TimestampMixin

class UserProgress(Base, TimestampMixin):
    __tablename__ = "user_progress"

    student_id = Column(String(255), primary_key=True)
    user_name = Column(String(255), nullable=True)
    xp = Column(Integer, default=0, nullable=False)
    streak = Column(Integer, default=0, nullable=False)
    completed_lesson_ids = Column(JSON, nullable=False, default=list)
    last_updated = Column(String(32), nullable=True)
