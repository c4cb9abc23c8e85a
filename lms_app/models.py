import secrets
import json
from datetime import datetime, timezone
from . import db

def utc_now():
    # Naive UTC; SQLite drops tzinfo on round-trip
    return datetime.now(timezone.utc).replace(tzinfo=None)

from flask_login import UserMixin

ROLES = ("admin", "professor", "student")
CONTENT_STATUSES = ("DRAFT", "PUBLISHED", "CLOSED")
NOTE_STATUSES = ("DRAFT", "PUBLISHED", "PRIVATE")
QUESTION_TYPES = ("MULTIPLE_CHOICE", "TRUE_FALSE", "MULTIPLE_SELECTION", "SHORT_ANSWER")
PRACTICE_QUESTION_TYPES = ("MULTIPLE_CHOICE", "TRUE_FALSE", "MULTIPLE_SELECTION")
ATTENDANCE_STATUSES = ("PRESENT", "ABSENT", "LATE", "EXCUSED")
DIFFICULTIES = ("EASY", "MEDIUM", "HARD")
NOTIFICATION_TYPES = ("assignment", "assignment_graded", "quiz", "new_note", "announcement", "general")


# ==========================================
# ACCOUNTS
# ==========================================

class User(UserMixin, db.Model):
    __tablename__ = "users"
    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(128), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(32), default="student")  # admin, professor, student
    avatar_url = db.Column(db.String(255))
    bio = db.Column(db.Text)
    university = db.Column(db.String(128))
    department = db.Column(db.String(128))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    teacher_profile = db.relationship(
        "TeacherProfile", backref="user", uselist=False, lazy=True, cascade="all, delete-orphan"
    )

    def get_id(self):
        return str(self.user_id)

    @property
    def is_professor(self):
        return (self.role or "").lower() == "professor"

    @property
    def is_student(self):
        return (self.role or "").lower() == "student"

    def to_dict(self):
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "avatar_url": self.avatar_url,
            "bio": self.bio,
            "university": self.university,
            "department": self.department,
            "is_active": bool(self.is_active),
            "created_at": _iso(self.created_at),
        }


TEACHER_PROFILE_FIELDS = (
    "college", "phone", "website", "linkedin", "address",
    "research_interests", "qualifications", "experience",
)


class TeacherProfile(db.Model):
    __tablename__ = "teacher_profiles"
    profile_id = db.Column(db.Integer, primary_key=True)
    user_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, unique=True)
    college = db.Column(db.String(128))
    phone = db.Column(db.String(32))
    website = db.Column(db.String(255))
    linkedin = db.Column(db.String(255))
    address = db.Column(db.Text)
    research_interests = db.Column(db.Text)
    qualifications = db.Column(db.Text)
    experience = db.Column(db.Text)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def to_dict(self):
        return {field: getattr(self, field) for field in TEACHER_PROFILE_FIELDS}


# ==========================================
# CLASSES
# ==========================================

class Classroom(db.Model):
    __tablename__ = "classes"
    class_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_private = db.Column(db.Boolean, default=False)
    is_archived = db.Column(db.Boolean, default=False)
    archived_at = db.Column(db.DateTime)
    gradient_color = db.Column(db.String(128))
    image_url = db.Column(db.String(255))
    professor_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    professor = db.relationship("User", backref="taught_classes", lazy=True)
    enrollments = db.relationship("Enrollment", backref="classroom", lazy=True, cascade="all, delete-orphan")
    invitations = db.relationship("ClassInvitation", backref="classroom", lazy=True, cascade="all, delete-orphan")
    notes = db.relationship("Note", backref="classroom", lazy=True, cascade="all, delete-orphan")
    quizzes = db.relationship("Quiz", backref="classroom", lazy=True, cascade="all, delete-orphan")
    assignments = db.relationship("Assignment", backref="classroom", lazy=True, cascade="all, delete-orphan")
    attendance_sessions = db.relationship("AttendanceSession", backref="classroom", lazy=True, cascade="all, delete-orphan")
    practice_questions = db.relationship("PracticeQuestion", backref="classroom", lazy=True, cascade="all, delete-orphan")
    practice_files = db.relationship("PracticeFile", backref="classroom", lazy=True, cascade="all, delete-orphan")
    calendar_events = db.relationship("CalendarEvent", backref="classroom", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.class_id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "is_private": bool(self.is_private),
            "is_archived": bool(self.is_archived),
            "archived_at": _iso(self.archived_at),
            "gradient_color": self.gradient_color,
            "image_url": self.image_url,
            "professor": {
                "id": self.professor.user_id,
                "name": self.professor.name,
                "email": self.professor.email,
            } if self.professor else None,
            "created_at": _iso(self.created_at),
        }


class Enrollment(db.Model):
    __tablename__ = "enrollments"
    enrollment_id = db.Column(db.Integer, primary_key=True)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    enrolled_at = db.Column(db.DateTime, default=utc_now)

    student = db.relationship("User", backref="enrollments", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("student_id_fk", "class_id_fk", name="uq_enrollment_student_class"),
    )


class ClassInvitation(db.Model):
    __tablename__ = "class_invitations"
    invitation_id = db.Column(db.Integer, primary_key=True)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    email = db.Column(db.String(128), nullable=False)
    invited_by_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    token_nonce = db.Column(db.String(32), nullable=False, default=lambda: secrets.token_hex(16))
    status = db.Column(db.String(16), default="PENDING")  # PENDING, ACCEPTED
    created_at = db.Column(db.DateTime, default=utc_now)
    accepted_at = db.Column(db.DateTime)


# ==========================================
# NOTES
# ==========================================

class Note(db.Model):
    __tablename__ = "notes"
    note_id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), default="DRAFT")
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    professor_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    professor = db.relationship("User", lazy=True)
    views = db.relationship("NoteView", backref="note", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.note_id,
            "title": self.title,
            "content": self.content,
            "status": self.status,
            "class_id": self.class_id_fk,
            "class_name": self.classroom.name if self.classroom else None,
            "professor_id": self.professor_id_fk,
            "professor_name": self.professor.name if self.professor else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class NoteView(db.Model):
    __tablename__ = "note_views"
    view_id = db.Column(db.Integer, primary_key=True)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    note_id_fk = db.Column(db.Integer, db.ForeignKey("notes.note_id"), nullable=False)
    viewed_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint("student_id_fk", "note_id_fk", name="uq_note_view_student_note"),
    )


# ==========================================
# QUIZZES
# ==========================================

class Quiz(db.Model):
    __tablename__ = "quizzes"
    quiz_id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(16), default="DRAFT")
    time_limit = db.Column(db.Integer, default=30)  # minutes
    max_attempts = db.Column(db.Integer, default=1)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    professor_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    note_id_fk = db.Column(db.Integer, db.ForeignKey("notes.note_id"))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    note = db.relationship("Note", backref="quizzes", lazy=True)
    questions = db.relationship(
        "Question", backref="quiz", lazy=True,
        cascade="all, delete-orphan", order_by="Question.position",
    )
    attempts = db.relationship("QuizAttempt", backref="quiz", lazy=True, cascade="all, delete-orphan")
    views = db.relationship("QuizView", backref="quiz", lazy=True, cascade="all, delete-orphan")

    @property
    def total_points(self):
        return sum((q.points or 0) for q in self.questions)


class Question(db.Model):
    __tablename__ = "questions"
    question_id = db.Column(db.Integer, primary_key=True)
    quiz_id_fk = db.Column(db.Integer, db.ForeignKey("quizzes.quiz_id"), nullable=False)
    text = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.String(32), nullable=False)
    points = db.Column(db.Integer, default=1)
    position = db.Column(db.Integer, default=0)

    options = db.relationship(
        "QuestionOption", backref="question", lazy=True,
        cascade="all, delete-orphan", order_by="QuestionOption.position",
    )


class QuestionOption(db.Model):
    __tablename__ = "question_options"
    option_id = db.Column(db.Integer, primary_key=True)
    question_id_fk = db.Column(db.Integer, db.ForeignKey("questions.question_id"), nullable=False)
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, default=False)
    position = db.Column(db.Integer, default=0)


class QuizView(db.Model):
    __tablename__ = "quiz_views"
    view_id = db.Column(db.Integer, primary_key=True)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    quiz_id_fk = db.Column(db.Integer, db.ForeignKey("quizzes.quiz_id"), nullable=False)
    viewed_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint("student_id_fk", "quiz_id_fk", name="uq_quiz_view_student_quiz"),
    )


class QuizAttempt(db.Model):
    __tablename__ = "quiz_attempts"
    attempt_id = db.Column(db.Integer, primary_key=True)
    quiz_id_fk = db.Column(db.Integer, db.ForeignKey("quizzes.quiz_id"), nullable=False)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    score = db.Column(db.Float, default=0)  # points earned
    total_points = db.Column(db.Float, default=0)
    percentage = db.Column(db.Float, default=0)
    time_spent = db.Column(db.Integer)  # seconds
    started_at = db.Column(db.DateTime, default=utc_now)
    completed_at = db.Column(db.DateTime)

    student = db.relationship("User", lazy=True)
    answers = db.relationship("Answer", backref="attempt", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.attempt_id,
            "quiz_id": self.quiz_id_fk,
            "student_id": self.student_id_fk,
            "score": self.score,
            "total_points": self.total_points,
            "percentage": self.percentage,
            "time_spent": self.time_spent,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }


class Answer(db.Model):
    __tablename__ = "answers"
    answer_id = db.Column(db.Integer, primary_key=True)
    attempt_id_fk = db.Column(db.Integer, db.ForeignKey("quiz_attempts.attempt_id"), nullable=False)
    question_id_fk = db.Column(db.Integer, db.ForeignKey("questions.question_id", ondelete="CASCADE"), nullable=False)
    selected_options_json = db.Column(db.Text)
    text_answer = db.Column(db.Text)
    is_correct = db.Column(db.Boolean, default=False)
    points = db.Column(db.Float, default=0)

    question = db.relationship("Question", lazy=True)

    @property
    def selected_options(self):
        try:
            return json.loads(self.selected_options_json or "[]")
        except ValueError:
            return []


# ==========================================
# ASSIGNMENTS
# ==========================================

class Assignment(db.Model):
    __tablename__ = "assignments"
    assignment_id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    due_date = db.Column(db.DateTime)
    status = db.Column(db.String(16), default="DRAFT")
    category = db.Column(db.String(64))
    file_url = db.Column(db.String(255))
    max_grade = db.Column(db.Float, default=100)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    professor_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    note_id_fk = db.Column(db.Integer, db.ForeignKey("notes.note_id"))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    professor = db.relationship("User", lazy=True)
    note = db.relationship("Note", backref="assignments", lazy=True)
    submissions = db.relationship("AssignmentSubmission", backref="assignment", lazy=True, cascade="all, delete-orphan")
    views = db.relationship("AssignmentView", backref="assignment", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.assignment_id,
            "title": self.title,
            "description": self.description,
            "due_date": _iso(self.due_date),
            "status": self.status,
            "category": self.category,
            "file_url": self.file_url,
            "max_grade": self.max_grade,
            "class_id": self.class_id_fk,
            "class_name": self.classroom.name if self.classroom else None,
            "note_id": self.note_id_fk,
            "created_at": _iso(self.created_at),
        }


class AssignmentSubmission(db.Model):
    __tablename__ = "assignment_submissions"
    submission_id = db.Column(db.Integer, primary_key=True)
    assignment_id_fk = db.Column(db.Integer, db.ForeignKey("assignments.assignment_id"), nullable=False)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    file_url = db.Column(db.String(255))
    original_filename = db.Column(db.String(255))
    comment = db.Column(db.Text)
    feedback = db.Column(db.Text)
    grade = db.Column(db.Float)
    graded_at = db.Column(db.DateTime)
    graded_by_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    submitted_at = db.Column(db.DateTime, default=utc_now)
    resubmission_count = db.Column(db.Integer, default=0)

    student = db.relationship("User", foreign_keys=[student_id_fk], lazy=True)

    __table_args__ = (
        db.UniqueConstraint("assignment_id_fk", "student_id_fk", name="uq_submission_assignment_student"),
    )

    def to_dict(self):
        return {
            "id": self.submission_id,
            "assignment_id": self.assignment_id_fk,
            "student_id": self.student_id_fk,
            "student_name": self.student.name if self.student else None,
            "student_email": self.student.email if self.student else None,
            "file_url": self.file_url,
            "original_filename": self.original_filename,
            "comment": self.comment,
            "feedback": self.feedback,
            "grade": self.grade,
            "graded_at": _iso(self.graded_at),
            "graded_by": self.graded_by_fk,
            "submitted_at": _iso(self.submitted_at),
            "resubmission_count": self.resubmission_count or 0,
        }


class AssignmentView(db.Model):
    __tablename__ = "assignment_views"
    view_id = db.Column(db.Integer, primary_key=True)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    assignment_id_fk = db.Column(db.Integer, db.ForeignKey("assignments.assignment_id"), nullable=False)
    viewed_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint("student_id_fk", "assignment_id_fk", name="uq_assignment_view_student_assignment"),
    )


# ==========================================
# ATTENDANCE
# ==========================================

class AttendanceSession(db.Model):
    __tablename__ = "attendance_sessions"
    session_id = db.Column(db.Integer, primary_key=True)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    professor_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    session_date = db.Column(db.DateTime, nullable=False)
    title = db.Column(db.String(255))
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)

    records = db.relationship("AttendanceRecord", backref="session", lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.session_id,
            "class_id": self.class_id_fk,
            "class_name": self.classroom.name if self.classroom else None,
            "date": _iso(self.session_date),
            "title": self.title,
            "description": self.description,
            "record_count": len(self.records),
        }


class AttendanceRecord(db.Model):
    __tablename__ = "attendance_records"
    record_id = db.Column(db.Integer, primary_key=True)
    session_id_fk = db.Column(db.Integer, db.ForeignKey("attendance_sessions.session_id"), nullable=False)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    status = db.Column(db.String(16), nullable=False)  # PRESENT, ABSENT, LATE, EXCUSED
    notes = db.Column(db.Text)
    marked_by_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    marked_at = db.Column(db.DateTime, default=utc_now)

    student = db.relationship("User", foreign_keys=[student_id_fk], lazy=True)

    __table_args__ = (
        db.UniqueConstraint("session_id_fk", "student_id_fk", name="uq_attendance_session_student"),
    )

    def to_dict(self):
        return {
            "id": self.record_id,
            "session_id": self.session_id_fk,
            "student_id": self.student_id_fk,
            "student_name": self.student.name if self.student else None,
            "status": self.status,
            "notes": self.notes,
            "marked_at": _iso(self.marked_at),
        }


# ==========================================
# PRACTICE
# ==========================================

class PracticeQuestion(db.Model):
    __tablename__ = "practice_questions"
    practice_question_id = db.Column(db.Integer, primary_key=True)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    professor_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    text = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.String(32), nullable=False)
    points = db.Column(db.Integer, default=1)
    explanation = db.Column(db.Text)
    difficulty = db.Column(db.String(16), default="MEDIUM")
    created_at = db.Column(db.DateTime, default=utc_now)

    options = db.relationship(
        "PracticeOption", backref="question", lazy=True,
        cascade="all, delete-orphan", order_by="PracticeOption.position",
    )
    attempts = db.relationship("PracticeAttempt", backref="question", lazy=True, cascade="all, delete-orphan")


class PracticeOption(db.Model):
    __tablename__ = "practice_options"
    option_id = db.Column(db.Integer, primary_key=True)
    question_id_fk = db.Column(db.Integer, db.ForeignKey("practice_questions.practice_question_id"), nullable=False)
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, default=False)
    position = db.Column(db.Integer, default=0)


class PracticeAttempt(db.Model):
    __tablename__ = "practice_attempts"
    attempt_id = db.Column(db.Integer, primary_key=True)
    question_id_fk = db.Column(db.Integer, db.ForeignKey("practice_questions.practice_question_id"), nullable=False)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    selected_options_json = db.Column(db.Text)
    is_correct = db.Column(db.Boolean, default=False)
    score = db.Column(db.Float, default=0)
    time_spent = db.Column(db.Integer, default=0)
    attempted_at = db.Column(db.DateTime, default=utc_now)

    student = db.relationship("User", lazy=True)


class PracticeFile(db.Model):
    __tablename__ = "practice_files"
    file_id = db.Column(db.Integer, primary_key=True)
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"), nullable=False)
    professor_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    file_url = db.Column(db.String(255), nullable=False)
    uploaded_at = db.Column(db.DateTime, default=utc_now)

    def to_dict(self):
        return {
            "id": self.file_id,
            "class_id": self.class_id_fk,
            "title": self.title,
            "description": self.description,
            "file_url": self.file_url,
            "uploaded_at": _iso(self.uploaded_at),
        }


# ==========================================
# CALENDAR
# ==========================================

EVENT_TYPES = ("holiday", "academic", "todo")
EVENT_PRIORITIES = ("low", "medium", "high")


class CalendarEvent(db.Model):
    __tablename__ = "calendar_events"
    event_id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    event_type = db.Column(db.String(16), nullable=False)
    event_date = db.Column(db.DateTime, nullable=False)
    category = db.Column(db.String(64))
    priority = db.Column(db.String(16))
    class_id_fk = db.Column(db.Integer, db.ForeignKey("classes.class_id"))
    professor_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    def to_dict(self):
        return {
            "id": self.event_id,
            "title": self.title,
            "description": self.description,
            "type": self.event_type,
            "date": _iso(self.event_date),
            "category": self.category,
            "priority": self.priority,
            "class_id": self.class_id_fk,
            "class_name": self.classroom.name if self.classroom else None,
            "professor_id": self.professor_id_fk,
        }


# ==========================================
# NOTIFICATIONS
# ==========================================

class Notification(db.Model):
    __tablename__ = "notifications"
    notification_id = db.Column(db.Integer, primary_key=True)
    user_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    notification_type = db.Column(db.String(32), default="general")
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    def to_dict(self):
        return {
            "id": self.notification_id,
            "title": self.title,
            "message": self.message,
            "type": self.notification_type,
            "is_read": bool(self.is_read),
            "created_at": _iso(self.created_at),
        }


def _iso(value):
    return value.isoformat() if value else None
