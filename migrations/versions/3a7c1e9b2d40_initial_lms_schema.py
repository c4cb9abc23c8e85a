"""initial lms schema

Revision ID: 3a7c1e9b2d40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3a7c1e9b2d40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('user_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=True),
        sa.Column('avatar_url', sa.String(length=255), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('university', sa.String(length=128), nullable=True),
        sa.Column('department', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'teacher_profiles',
        sa.Column('profile_id', sa.Integer(), primary_key=True),
        sa.Column('user_id_fk', sa.Integer(), nullable=False),
        sa.Column('college', sa.String(length=128), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('website', sa.String(length=255), nullable=True),
        sa.Column('linkedin', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('research_interests', sa.Text(), nullable=True),
        sa.Column('qualifications', sa.Text(), nullable=True),
        sa.Column('experience', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id_fk'], ['users.user_id']),
        sa.UniqueConstraint('user_id_fk'),
    )

    op.create_table(
        'classes',
        sa.Column('class_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_private', sa.Boolean(), nullable=True, server_default=sa.text('0')),
        sa.Column('is_archived', sa.Boolean(), nullable=True, server_default=sa.text('0')),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        sa.Column('gradient_color', sa.String(length=128), nullable=True),
        sa.Column('image_url', sa.String(length=255), nullable=True),
        sa.Column('professor_id_fk', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['professor_id_fk'], ['users.user_id']),
        sa.UniqueConstraint('code'),
    )

    op.create_table(
        'enrollments',
        sa.Column('enrollment_id', sa.Integer(), primary_key=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.UniqueConstraint('student_id_fk', 'class_id_fk', name='uq_enrollment_student_class'),
    )

    op.create_table(
        'class_invitations',
        sa.Column('invitation_id', sa.Integer(), primary_key=True),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False),
        sa.Column('invited_by_fk', sa.Integer(), nullable=True),
        sa.Column('token_nonce', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['invited_by_fk'], ['users.user_id']),
    )

    op.create_table(
        'notes',
        sa.Column('note_id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('professor_id_fk', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['professor_id_fk'], ['users.user_id']),
    )
    op.create_index('ix_notes_class_status', 'notes', ['class_id_fk', 'status'])

    op.create_table(
        'note_views',
        sa.Column('view_id', sa.Integer(), primary_key=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('note_id_fk', sa.Integer(), nullable=False),
        sa.Column('viewed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['note_id_fk'], ['notes.note_id']),
        sa.UniqueConstraint('student_id_fk', 'note_id_fk', name='uq_note_view_student_note'),
    )

    op.create_table(
        'quizzes',
        sa.Column('quiz_id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('time_limit', sa.Integer(), nullable=True),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('professor_id_fk', sa.Integer(), nullable=False),
        sa.Column('note_id_fk', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['professor_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['note_id_fk'], ['notes.note_id']),
    )

    op.create_table(
        'questions',
        sa.Column('question_id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id_fk', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(length=32), nullable=False),
        sa.Column('points', sa.Integer(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['quiz_id_fk'], ['quizzes.quiz_id']),
    )

    op.create_table(
        'question_options',
        sa.Column('option_id', sa.Integer(), primary_key=True),
        sa.Column('question_id_fk', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['question_id_fk'], ['questions.question_id']),
    )

    op.create_table(
        'quiz_views',
        sa.Column('view_id', sa.Integer(), primary_key=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('quiz_id_fk', sa.Integer(), nullable=False),
        sa.Column('viewed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['quiz_id_fk'], ['quizzes.quiz_id']),
        sa.UniqueConstraint('student_id_fk', 'quiz_id_fk', name='uq_quiz_view_student_quiz'),
    )

    op.create_table(
        'quiz_attempts',
        sa.Column('attempt_id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id_fk', sa.Integer(), nullable=False),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('total_points', sa.Float(), nullable=True),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('time_spent', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['quiz_id_fk'], ['quizzes.quiz_id']),
        sa.ForeignKeyConstraint(['student_id_fk'], ['users.user_id']),
    )
    op.create_index('ix_quiz_attempts_quiz_student', 'quiz_attempts', ['quiz_id_fk', 'student_id_fk'])

    op.create_table(
        'answers',
        sa.Column('answer_id', sa.Integer(), primary_key=True),
        sa.Column('attempt_id_fk', sa.Integer(), nullable=False),
        sa.Column('question_id_fk', sa.Integer(), nullable=False),
        sa.Column('selected_options_json', sa.Text(), nullable=True),
        sa.Column('text_answer', sa.Text(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('points', sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(['attempt_id_fk'], ['quiz_attempts.attempt_id']),
        sa.ForeignKeyConstraint(['question_id_fk'], ['questions.question_id'], ondelete='CASCADE'),
    )

    op.create_table(
        'assignments',
        sa.Column('assignment_id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('file_url', sa.String(length=255), nullable=True),
        sa.Column('max_grade', sa.Float(), nullable=True),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('professor_id_fk', sa.Integer(), nullable=False),
        sa.Column('note_id_fk', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['professor_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['note_id_fk'], ['notes.note_id']),
    )

    op.create_table(
        'assignment_submissions',
        sa.Column('submission_id', sa.Integer(), primary_key=True),
        sa.Column('assignment_id_fk', sa.Integer(), nullable=False),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('file_url', sa.String(length=255), nullable=True),
        sa.Column('original_filename', sa.String(length=255), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('grade', sa.Float(), nullable=True),
        sa.Column('graded_at', sa.DateTime(), nullable=True),
        sa.Column('graded_by_fk', sa.Integer(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('resubmission_count', sa.Integer(), nullable=True, server_default=sa.text('0')),
        sa.ForeignKeyConstraint(['assignment_id_fk'], ['assignments.assignment_id']),
        sa.ForeignKeyConstraint(['student_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['graded_by_fk'], ['users.user_id']),
        sa.UniqueConstraint('assignment_id_fk', 'student_id_fk', name='uq_submission_assignment_student'),
    )

    op.create_table(
        'attendance_sessions',
        sa.Column('session_id', sa.Integer(), primary_key=True),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('professor_id_fk', sa.Integer(), nullable=False),
        sa.Column('session_date', sa.DateTime(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['professor_id_fk'], ['users.user_id']),
    )
    op.create_index('ix_attendance_sessions_class_date', 'attendance_sessions', ['class_id_fk', 'session_date'])

    op.create_table(
        'attendance_records',
        sa.Column('record_id', sa.Integer(), primary_key=True),
        sa.Column('session_id_fk', sa.Integer(), nullable=False),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('marked_by_fk', sa.Integer(), nullable=True),
        sa.Column('marked_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['session_id_fk'], ['attendance_sessions.session_id']),
        sa.ForeignKeyConstraint(['student_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['marked_by_fk'], ['users.user_id']),
        sa.UniqueConstraint('session_id_fk', 'student_id_fk', name='uq_attendance_session_student'),
    )

    op.create_table(
        'practice_questions',
        sa.Column('practice_question_id', sa.Integer(), primary_key=True),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('professor_id_fk', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(length=32), nullable=False),
        sa.Column('points', sa.Integer(), nullable=True),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('difficulty', sa.String(length=16), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['professor_id_fk'], ['users.user_id']),
    )

    op.create_table(
        'practice_options',
        sa.Column('option_id', sa.Integer(), primary_key=True),
        sa.Column('question_id_fk', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['question_id_fk'], ['practice_questions.practice_question_id']),
    )

    op.create_table(
        'practice_attempts',
        sa.Column('attempt_id', sa.Integer(), primary_key=True),
        sa.Column('question_id_fk', sa.Integer(), nullable=False),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('selected_options_json', sa.Text(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('time_spent', sa.Integer(), nullable=True),
        sa.Column('attempted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['question_id_fk'], ['practice_questions.practice_question_id']),
        sa.ForeignKeyConstraint(['student_id_fk'], ['users.user_id']),
    )

    op.create_table(
        'practice_files',
        sa.Column('file_id', sa.Integer(), primary_key=True),
        sa.Column('class_id_fk', sa.Integer(), nullable=False),
        sa.Column('professor_id_fk', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('file_url', sa.String(length=255), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['professor_id_fk'], ['users.user_id']),
    )

    op.create_table(
        'assignment_views',
        sa.Column('view_id', sa.Integer(), primary_key=True),
        sa.Column('student_id_fk', sa.Integer(), nullable=False),
        sa.Column('assignment_id_fk', sa.Integer(), nullable=False),
        sa.Column('viewed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['student_id_fk'], ['users.user_id']),
        sa.ForeignKeyConstraint(['assignment_id_fk'], ['assignments.assignment_id']),
        sa.UniqueConstraint('student_id_fk', 'assignment_id_fk', name='uq_assignment_view_student_assignment'),
    )

    op.create_table(
        'calendar_events',
        sa.Column('event_id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('event_type', sa.String(length=16), nullable=False),
        sa.Column('event_date', sa.DateTime(), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=True),
        sa.Column('class_id_fk', sa.Integer(), nullable=True),
        sa.Column('professor_id_fk', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['class_id_fk'], ['classes.class_id']),
        sa.ForeignKeyConstraint(['professor_id_fk'], ['users.user_id']),
    )

    op.create_table(
        'notifications',
        sa.Column('notification_id', sa.Integer(), primary_key=True),
        sa.Column('user_id_fk', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('notification_type', sa.String(length=32), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=True, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id_fk'], ['users.user_id']),
    )
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id_fk', 'is_read'])


def downgrade():
    op.drop_index('ix_notifications_user_read', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('calendar_events')
    op.drop_table('assignment_views')
    op.drop_table('practice_files')
    op.drop_table('practice_attempts')
    op.drop_table('practice_options')
    op.drop_table('practice_questions')
    op.drop_table('attendance_records')
    op.drop_index('ix_attendance_sessions_class_date', table_name='attendance_sessions')
    op.drop_table('attendance_sessions')
    op.drop_table('assignment_submissions')
    op.drop_table('assignments')
    op.drop_table('answers')
    op.drop_index('ix_quiz_attempts_quiz_student', table_name='quiz_attempts')
    op.drop_table('quiz_attempts')
    op.drop_table('quiz_views')
    op.drop_table('question_options')
    op.drop_table('questions')
    op.drop_table('quizzes')
    op.drop_table('note_views')
    op.drop_index('ix_notes_class_status', table_name='notes')
    op.drop_table('notes')
    op.drop_table('class_invitations')
    op.drop_table('enrollments')
    op.drop_table('classes')
    op.drop_table('teacher_profiles')
    op.drop_table('users')
