from flask_login import current_user
from sqlalchemy import select
from . import db
from .models import Assignment, AssignmentSubmission, Classroom, Enrollment, PracticeFile


def is_enrolled(student_id, class_id):
    return db.session.execute(
        select(Enrollment.enrollment_id).filter_by(student_id_fk=student_id, class_id_fk=class_id)
    ).first() is not None


def owned_class(class_id, professor_id=None):
    """The class if it belongs to the professor (default: current user), else None."""
    if class_id is None:
        return None
    c = db.session.get(Classroom, class_id)
    owner = professor_id if professor_id is not None else current_user.user_id
    if not c or c.professor_id_fk != owner:
        return None
    return c


def can_view_class(classroom, user=None):
    user = user or current_user
    role = (user.role or "").lower()
    if role == "admin":
        return True
    if role == "professor":
        return classroom.professor_id_fk == user.user_id
    return is_enrolled(user.user_id, classroom.class_id)


def enrolled_class_ids(student_id):
    return [row[0] for row in db.session.execute(
        select(Enrollment.class_id_fk).filter_by(student_id_fk=student_id)
    ).all()]


def enrolled_student_ids(class_id):
    return [row[0] for row in db.session.execute(
        select(Enrollment.student_id_fk).filter_by(class_id_fk=class_id)
    ).all()]


def can_download(file_url, user=None):
    """Whether ``user`` may fetch an uploaded file.

    Submissions are visible to their student and the class professor;
    assignment attachments and practice files to members of the class.
    Files no record points at are never served.
    """
    user = user or current_user
    role = (user.role or "").lower()
    submissions = db.session.execute(
        select(AssignmentSubmission).filter_by(file_url=file_url)
    ).scalars().all()
    for sub in submissions:
        if role == "admin" or sub.student_id_fk == user.user_id:
            return True
        if sub.assignment.classroom.professor_id_fk == user.user_id:
            return True
    classrooms = [a.classroom for a in db.session.execute(
        select(Assignment).filter_by(file_url=file_url)
    ).scalars()]
    classrooms += [f.classroom for f in db.session.execute(
        select(PracticeFile).filter_by(file_url=file_url)
    ).scalars()]
    return any(can_view_class(c, user) for c in classrooms if c is not None)
