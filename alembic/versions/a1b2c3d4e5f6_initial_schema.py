"""initial schema: modules, lessons, attempts, progress

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]

def upgrade() -> None:
    op.create_table(
        'modules',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('module_key', sa.String(32), nullable=False),
        sa.Column('code', sa.String(64), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.String(1000), nullable=False),
        sa.Column('color_theme', sa.String(32), nullable=False),
        sa.Column('icon_key', sa.String(32), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_modules_module_key', 'modules', ['module_key'], unique=True)
    op.create_index('ix_modules_is_default', 'modules', ['is_default'])

    op.create_table(
        'lessons',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.String(1000), nullable=False),
        sa.Column('difficulty', sa.String(32), nullable=False),
        sa.Column('xp_reward', sa.Integer(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('module_key', sa.String(32), sa.ForeignKey('modules.module_key'), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('owner_id', sa.String(255), nullable=True),
        sa.Column('questions_json', sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_lessons_module_key', 'lessons', ['module_key'])
    op.create_index('ix_lessons_is_default', 'lessons', ['is_default'])
    op.create_index('ix_lessons_owner_id', 'lessons', ['owner_id'])

    op.create_table(
        'lesson_attempts',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('student_id', sa.String(255), nullable=False),
        sa.Column('lesson_id', sa.String(64), nullable=False),
        sa.Column('started_at', sa.String(32), nullable=False),
        sa.Column('updated_at', sa.String(32), nullable=False),
        sa.Column('completed_at', sa.String(32), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('answers', sa.JSON(), nullable=False),
    )
    op.create_index('ix_lesson_attempts_student_id', 'lesson_attempts', ['student_id'])
    op.create_index('ix_lesson_attempts_lesson_id', 'lesson_attempts', ['lesson_id'])
    op.create_index('idx_attempts_student_lesson', 'lesson_attempts', ['student_id', 'lesson_id'])

    op.create_table(
        'user_progress',
        sa.Column('student_id', sa.String(255), primary_key=True),
        sa.Column('user_name', sa.String(255), nullable=True),
        sa.Column('xp', sa.Integer(), nullable=False),
        sa.Column('streak', sa.Integer(), nullable=False),
        sa.Column('completed_lesson_ids', sa.JSON(), nullable=False),
        sa.Column('last_updated', sa.String(32), nullable=True),
        *_timestamps(),
    )

def downgrade() -> None:
    op.drop_table('user_progress')
    op.drop_table('lesson_attempts')
    op.drop_table('lessons')
    op.drop_table('modules')
