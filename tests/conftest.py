"""
Pytest configuration and fixtures for PolymerLearn tests.
"""
import sys
import os
import tempfile

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read at import time, so the environment must be set first
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("INSTRUCTOR_IDS", "teacher-1")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="polymerlearn-uploads-"))
os.environ.setdefault("ENV", "development")

import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool

from models.base import Base
import models.module, models.lesson, models.attempt, models.progress  # noqa: F401
from services.storage_service import BlobStorage


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(root_dir=str(tmp_path / "blobs"), base_url="http://test")


@pytest.fixture
def sample_questions():
    """Three polymer questions; correct answers are 1, 0, 2."""
    return [
        {
            "text": "What is a polymer?",
            "options": ["A small molecule", "A large molecule made of repeating units", "A metal", "An element"],
            "correct_index": 1,
            "explanation": "Polymers are made of repeating monomers.",
        },
        {
            "text": "What is a monomer?",
            "options": ["The repeating unit", "A type of polymer", "A bond", "A solvent"],
            "correct_index": 0,
            "explanation": "Monomers are the building blocks.",
        },
        {
            "text": "Which is a natural polymer?",
            "options": ["Nylon", "Polyethylene", "Cellulose", "PVC"],
            "correct_index": 2,
            "explanation": "Cellulose is found in plant cell walls.",
        },
    ]


@pytest.fixture
def lesson_payload(sample_questions):
    return {
        "title": "Introduction to Polymers",
        "description": "Basics",
        "difficulty": "Beginner",
        "xp_reward": 90,
        "order": 1,
        "questions": sample_questions,
    }
