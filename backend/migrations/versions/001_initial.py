"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the Retest Submission Service:
- retest_assignments: Teacher-authored retest tasks (budget, window, threshold)
- retest_targets: Per-student retest state machine rows
- test_attempts: Per-attempt retest records, unique per attempt slot
- test_results: Regular (non-retest) submissions
- best_retest_values: Best retest outcome per student and test
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Retest Assignments Table ──────────────────────────────
    op.create_table(
        'retest_assignments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_id', sa.String(36), nullable=False),
        sa.Column('test_type', sa.Text(), nullable=True),
        sa.Column('teacher_id', sa.String(36), nullable=True),
        sa.Column('subject_id', sa.String(36), nullable=True),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('window_start', sa.DateTime(), nullable=False),
        sa.Column('window_end', sa.DateTime(), nullable=False),
        sa.Column('passing_threshold', sa.Float(), nullable=False, server_default='50'),
        sa.Column('scoring_policy', sa.Text(), nullable=False, server_default='BEST'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('max_attempts > 0', name='ck_retest_assignments_max_attempts_positive'),
    )

    # ── Retest Targets Table ──────────────────────────────────
    op.create_table(
        'retest_targets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('retest_assignment_id', sa.String(36),
                  sa.ForeignKey('retest_assignments.id'), nullable=False),
        sa.Column('student_id', sa.String(36), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('attempt_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='IN_PROGRESS'),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('retest_assignment_id', 'student_id',
                            name='uq_retest_targets_assignment_student'),
        sa.CheckConstraint("status IN ('IN_PROGRESS', 'PASSED', 'FAILED')",
                           name='ck_retest_targets_status'),
        sa.CheckConstraint("is_completed = (status <> 'IN_PROGRESS')",
                           name='ck_retest_targets_completed_matches_status'),
    )
    op.create_index('ix_retest_targets_student_id', 'retest_targets', ['student_id'])

    # ── Test Attempts Table ───────────────────────────────────
    op.create_table(
        'test_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36), nullable=False),
        sa.Column('test_id', sa.String(36), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('retest_assignment_id', sa.String(36),
                  sa.ForeignKey('retest_assignments.id'), nullable=True),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('max_score', sa.Float(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=False),
        sa.Column('answers', postgresql.JSONB(),
                  nullable=False, server_default='{}'),
        sa.Column('answers_format', sa.String(16), nullable=False, server_default='flat'),
        sa.Column('time_taken', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('caught_cheating', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('visibility_change_times', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('test_name', sa.Text(), nullable=True),
        sa.Column('teacher_id', sa.String(36), nullable=True),
        sa.Column('subject_id', sa.String(36), nullable=True),
        sa.Column('academic_period_id', sa.String(36), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('surname', sa.Text(), nullable=True),
        sa.Column('nickname', sa.Text(), nullable=True),
        sa.Column('grade', sa.Integer(), nullable=True),
        sa.Column('class_name', sa.Integer(), nullable=True),
        sa.Column('number', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('student_id', 'test_id', 'attempt_number',
                            name='uq_test_attempts_student_test_attempt'),
    )
    op.create_index('ix_test_attempts_retest_assignment_id', 'test_attempts', ['retest_assignment_id'])

    # ── Test Results Table ────────────────────────────────────
    op.create_table(
        'test_results',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36), nullable=False),
        sa.Column('test_id', sa.String(36), nullable=False),
        sa.Column('test_name', sa.Text(), nullable=True),
        sa.Column('teacher_id', sa.String(36), nullable=True),
        sa.Column('subject_id', sa.String(36), nullable=True),
        sa.Column('academic_period_id', sa.String(36), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('surname', sa.Text(), nullable=True),
        sa.Column('nickname', sa.Text(), nullable=True),
        sa.Column('grade', sa.Integer(), nullable=True),
        sa.Column('class_name', sa.Integer(), nullable=True),
        sa.Column('number', sa.Integer(), nullable=True),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('max_score', sa.Float(), nullable=False),
        sa.Column('answers', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('answers_format', sa.String(16), nullable=False, server_default='flat'),
        sa.Column('time_taken', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('caught_cheating', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('visibility_change_times', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('retest_best_score', sa.Float(), nullable=True),
        sa.Column('retest_best_max_score', sa.Float(), nullable=True),
        sa.Column('retest_best_percentage', sa.Float(), nullable=True),
        sa.Column('retest_best_attempt_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_test_results_student_test', 'test_results', ['student_id', 'test_id'])

    # ── Best Retest Values Table ──────────────────────────────
    op.create_table(
        'best_retest_values',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36), nullable=False),
        sa.Column('parent_test_id', sa.String(36), nullable=False),
        sa.Column('best_attempt_id', sa.String(36), nullable=False),
        sa.Column('best_score', sa.Float(), nullable=False),
        sa.Column('best_max_score', sa.Float(), nullable=False),
        sa.Column('best_percentage', sa.Float(), nullable=False),
        sa.Column('attempts_recorded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('student_id', 'parent_test_id',
                            name='uq_best_retest_values_student_test'),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('best_retest_values')
    op.drop_index('ix_test_results_student_test', table_name='test_results')
    op.drop_table('test_results')
    op.drop_index('ix_test_attempts_retest_assignment_id', table_name='test_attempts')
    op.drop_table('test_attempts')
    op.drop_index('ix_retest_targets_student_id', table_name='retest_targets')
    op.drop_table('retest_targets')
    op.drop_table('retest_assignments')
