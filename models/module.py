import uuid
from sqlalchemy import Column, Integer, String, Boolean
from models.base import Base, TimestampMixin

class Module(Base, TimestampMixin):
    __tablename__ = "modules"

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    module_key = Column(String(32), unique=True, index=True, nullable=False)
    code = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), default="", nullable=False)
    color_theme = Column(String(32), default="indigo", nullable=False)
    icon_key = Column(String(32), default="atom", nullable=False)
    order = Column(Integer, default=0, nullable=False)
    is_default = Column(Boolean, default=False, index=True, nullable=False)
