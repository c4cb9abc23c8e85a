import json
from .. import db
from ..api_utils import ValidationError, parse_int
from ..models import Answer, Question, QuestionOption, QUESTION_TYPES

CHOICE_TYPES = ("MULTIPLE_CHOICE", "TRUE_FALSE")


def build_questions(quiz, questions):
    """
    Validates question payloads and attaches Question/QuestionOption rows to quiz.
    Raises ValidationError listing every bad question.
    """
    if not isinstance(questions, list) or not questions:
        raise ValidationError("At least one question is required")
    errors = []
    built = []
    for index, payload in enumerate(questions, start=1):
        try:
            built.append(_build_question(payload, index))
        except ValidationError as e:
            errors.extend(f"Question {index}: {d}" for d in e.details)
    if errors:
        raise ValidationError(errors)
    for question in built:
        quiz.questions.append(question)
    return built


def _build_question(payload, position):
    if not isinstance(payload, dict):
        raise ValidationError("must be an object")
    text = (payload.get("text") or payload.get("question") or "").strip()
    if not text:
        raise ValidationError("text is required")
    qtype = (payload.get("type") or "").strip().upper()
    if qtype not in QUESTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(QUESTION_TYPES)}")
    points = parse_int(payload.get("points"), "points", default=1, minimum=1, maximum=10)
    question = Question(text=text, question_type=qtype, points=points, position=position)

    options = [str(o).strip() for o in (payload.get("options") or []) if str(o).strip()]
    if qtype == "TRUE_FALSE":
        answer = str(payload.get("correct_answer") or "").strip().lower()
        if answer not in ("true", "false"):
            raise ValidationError("correct_answer must be True or False")
        question.options = [
            QuestionOption(text="True", is_correct=answer == "true", position=1),
            QuestionOption(text="False", is_correct=answer == "false", position=2),
        ]
    elif qtype == "MULTIPLE_CHOICE":
        answer = str(payload.get("correct_answer") or "").strip()
        if len(options) < 2:
            raise ValidationError("multiple choice needs at least two options")
        if answer not in options:
            raise ValidationError("correct_answer must match one of the options")
        question.options = [
            QuestionOption(text=o, is_correct=o == answer, position=i)
            for i, o in enumerate(options, start=1)
        ]
    elif qtype == "MULTIPLE_SELECTION":
        answers = {str(a).strip() for a in (payload.get("correct_answers") or []) if str(a).strip()}
        if len(options) < 2:
            raise ValidationError("multiple selection needs at least two options")
        if not answers or not answers.issubset(options):
            raise ValidationError("correct_answers must be a non-empty subset of the options")
        question.options = [
            QuestionOption(text=o, is_correct=o in answers, position=i)
            for i, o in enumerate(options, start=1)
        ]
    return question


def replace_questions(quiz, questions):
    """Swap every question of quiz in one unit of work; answers to the old questions go too."""
    old_ids = [q.question_id for q in quiz.questions if q.question_id]
    if old_ids:
        db.session.query(Answer).filter(Answer.question_id_fk.in_(old_ids)).delete(synchronize_session=False)
    quiz.questions.clear()
    db.session.flush()
    return build_questions(quiz, questions)


def grade_answer(question, selected):
    """
    Returns (is_correct, points) for one answer.
    Choice questions compare option text; short answers are left for manual review.
    """
    selected = [str(s).strip() for s in (selected or [])]
    correct = [o.text for o in question.options if o.is_correct]
    if question.question_type in CHOICE_TYPES:
        is_correct = bool(selected) and bool(correct) and selected[0] == correct[0]
    elif question.question_type == "MULTIPLE_SELECTION":
        is_correct = bool(correct) and len(selected) == len(correct) and set(selected) == set(correct)
    else:
        is_correct = False
    return is_correct, (question.points or 0) if is_correct else 0


def grade_submission(quiz, attempt, answers):
    """
    Grades answers into attempt and returns (score, total_points).
    Total points covers every quiz question, so skipped questions score 0.
    """
    by_id = {q.question_id: q for q in quiz.questions}
    score = 0
    seen = set()
    for payload in answers:
        if not isinstance(payload, dict):
            continue
        try:
            question_id = int(payload.get("question_id"))
        except (TypeError, ValueError):
            continue
        question = by_id.get(question_id)
        if question is None or question_id in seen:
            continue
        seen.add(question_id)
        selected = payload.get("selected_options") or []
        if not isinstance(selected, list):
            selected = [selected]
        is_correct, points = grade_answer(question, selected)
        score += points
        attempt.answers.append(Answer(
            question_id_fk=question_id,
            selected_options_json=json.dumps(selected) if selected else None,
            text_answer=(payload.get("text_answer") or None),
            is_correct=is_correct,
            points=points,
        ))
    total_points = quiz.total_points
    attempt.score = score
    attempt.total_points = total_points
    attempt.percentage = round(score / total_points * 100, 2) if total_points else 0
    return score, total_points
