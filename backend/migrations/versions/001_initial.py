"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates the grading tables for PhyNetix:
- tests: exam papers with test_type / exam_type
- test_attempts: one row per user attempt, graded once
- courses, chapters, questions, test_questions: regular question schema
- test_subjects, test_sections, test_section_questions: section schema

Also creates indexes for the submission and ranking queries.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Tests ─────────────────────────────────────────────────
    op.create_table(
        'tests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('test_type', sa.Text(), nullable=False, server_default='normal'),
        sa.Column('exam_type', sa.Text(), nullable=True, server_default='jee_mains'),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='180'),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Test attempts ─────────────────────────────────────────
    op.create_table(
        'test_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('test_id', sa.String(36), sa.ForeignKey('tests.id'), nullable=False),
        sa.Column('answers', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('total_marks', sa.Float(), nullable=True),
        sa.Column('time_taken_seconds', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('percentile', sa.Float(), nullable=True),
    )
    op.create_index('ix_test_attempts_user_id', 'test_attempts', ['user_id'])
    op.create_index('ix_test_attempts_test_id', 'test_attempts', ['test_id'])
    op.create_index('ix_test_attempts_test_completed', 'test_attempts',
                    ['test_id', 'completed_at'])

    # ── Regular question schema ───────────────────────────────
    op.create_table(
        'courses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
    )
    op.create_table(
        'chapters',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=True),
    )
    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('chapter_id', sa.String(36), sa.ForeignKey('chapters.id'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('question_type', sa.Text(), nullable=False, server_default='single_choice'),
        sa.Column('options', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=False),
        sa.Column('marks', sa.Float(), nullable=True),
        sa.Column('negative_marks', sa.Float(), nullable=True),
        sa.Column('question_number', sa.Integer(), nullable=True),
    )
    op.create_table(
        'test_questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_id', sa.String(36), sa.ForeignKey('tests.id'), nullable=False),
        sa.Column('question_id', sa.String(36), sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=True),
    )
    op.create_index('ix_test_questions_test_id', 'test_questions', ['test_id'])

    # ── Section question schema ───────────────────────────────
    op.create_table(
        'test_subjects',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_id', sa.String(36), sa.ForeignKey('tests.id'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=True),
    )
    op.create_table(
        'test_sections',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('subject_id', sa.String(36), sa.ForeignKey('test_subjects.id'), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('section_type', sa.Text(), nullable=False, server_default='single_choice'),
        sa.Column('order_index', sa.Integer(), nullable=True),
    )
    op.create_table(
        'test_section_questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_id', sa.String(36), sa.ForeignKey('tests.id'), nullable=False),
        sa.Column('section_id', sa.String(36), sa.ForeignKey('test_sections.id'), nullable=False),
        sa.Column('question_number', sa.Integer(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=True),
        sa.Column('options', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=False),
        sa.Column('marks', sa.Float(), nullable=True),
        sa.Column('negative_marks', sa.Float(), nullable=True),
        sa.Column('is_bonus', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('chapter', sa.Text(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=True),
    )
    op.create_index('ix_test_section_questions_test_id', 'test_section_questions', ['test_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_test_section_questions_test_id', table_name='test_section_questions')
    op.drop_table('test_section_questions')
    op.drop_table('test_sections')
    op.drop_table('test_subjects')
    op.drop_index('ix_test_questions_test_id', table_name='test_questions')
    op.drop_table('test_questions')
    op.drop_table('questions')
    op.drop_table('chapters')
    op.drop_table('courses')
    op.drop_index('ix_test_attempts_test_completed', table_name='test_attempts')
    op.drop_index('ix_test_attempts_test_id', table_name='test_attempts')
    op.drop_index('ix_test_attempts_user_id', table_name='test_attempts')
    op.drop_table('test_attempts')
    op.drop_table('tests')
