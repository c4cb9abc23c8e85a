import os
import sys
import argparse
import logging
from datetime import timedelta

# Ensure project root is on sys.path
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from sqlalchemy import select
from werkzeug.security import generate_password_hash

from lms_app import create_app, db
from lms_app.models import (
    Assignment, Classroom, Enrollment, Note, Question, QuestionOption, Quiz, User, utc_now,
)

logger = logging.getLogger(__name__)

DEMO_USERS = (
    ("Admin User", "admin@example.com", "admin"),
    ("Dr. Jane Smith", "professor@example.com", "professor"),
    ("Alex Student", "student@example.com", "student"),
)
DEMO_CLASS_CODE = "CS101"


def _get_or_create_user(name, email, role, password):
    user = db.session.execute(select(User).filter_by(email=email)).scalars().first()
    if user:
        logger.info("User %s already exists", email)
        return user
    user = User(name=name, email=email, role=role, password_hash=generate_password_hash(password))
    db.session.add(user)
    db.session.flush()
    logger.info("Created %s %s", role, email)
    return user


def seed(password: str) -> None:
    app = create_app()
    with app.app_context():
        users = {role: _get_or_create_user(name, email, role, password) for name, email, role in DEMO_USERS}
        professor, student = users["professor"], users["student"]

        classroom = db.session.execute(select(Classroom).filter_by(code=DEMO_CLASS_CODE)).scalars().first()
        if classroom:
            logger.info("Class %s already seeded; nothing else to do", DEMO_CLASS_CODE)
            db.session.commit()
            return

        classroom = Classroom(
            name="Introduction to Computer Science",
            code=DEMO_CLASS_CODE,
            description="Fundamentals of programming and problem solving.",
            professor_id_fk=professor.user_id,
        )
        db.session.add(classroom)
        db.session.flush()
        db.session.add(Enrollment(student_id_fk=student.user_id, class_id_fk=classroom.class_id))

        note = Note(
            title="Welcome to CS101",
            content="Course outline, grading policy and the reading list for the first week.",
            status="PUBLISHED",
            class_id_fk=classroom.class_id,
            professor_id_fk=professor.user_id,
        )
        db.session.add(note)

        now = utc_now()
        for title, days in (("Problem set 1", 7), ("Problem set 2", 14)):
            db.session.add(Assignment(
                title=title,
                description=f"{title}: complete the exercises and upload a PDF.",
                due_date=now + timedelta(days=days),
                status="PUBLISHED",
                class_id_fk=classroom.class_id,
                professor_id_fk=professor.user_id,
            ))

        quiz = Quiz(
            title="Week 1 check-in",
            status="PUBLISHED",
            time_limit=15,
            max_attempts=2,
            class_id_fk=classroom.class_id,
            professor_id_fk=professor.user_id,
        )
        q1 = Question(text="Python is an interpreted language.", question_type="TRUE_FALSE", points=1, position=1)
        q1.options = [
            QuestionOption(text="True", is_correct=True, position=1),
            QuestionOption(text="False", is_correct=False, position=2),
        ]
        q2 = Question(text="Which keyword defines a function?", question_type="MULTIPLE_CHOICE", points=2, position=2)
        q2.options = [
            QuestionOption(text=text, is_correct=text == "def", position=i)
            for i, text in enumerate(("func", "def", "lambda", "fn"), start=1)
        ]
        quiz.questions = [q1, q2]
        db.session.add(quiz)

        db.session.commit()
        logger.info("Seeded class %s with a note, two assignments and a quiz", DEMO_CLASS_CODE)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Seed demo users and a demo class.")
    parser.add_argument("--password", default="password123", help="Password for every demo account")
    args = parser.parse_args()

    seed(args.password)
