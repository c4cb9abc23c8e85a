"""Aggregation over already-loaded LMS records.

Every analytics surface (the JSON API, the emailed report, the export and
the printable pages) goes through these functions so the numbers agree.

Conventions:
  * rates and averages are percentages rounded to 2 decimals;
  * empty inputs give 0, never a division error;
  * quiz performance follows the best-score policy: only the highest
    attempt per (quiz, student) counts;
  * attendance uses the weighted formula in ``ATTENDANCE_WEIGHTS``.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from sqlalchemy import select
from .. import db
from ..models import (
    Assignment, AssignmentSubmission, AttendanceRecord, AttendanceSession,
    Classroom, Enrollment, Note, Quiz, QuizAttempt, utc_now,
)

ATTENDANCE_STATUSES = ("PRESENT", "ABSENT", "LATE", "EXCUSED")
ATTENDANCE_WEIGHTS = {"PRESENT": 1.0, "LATE": 0.5, "EXCUSED": 0.75, "ABSENT": 0.0}
PASSING_SCORE = 70
ACTIVE_WINDOW_DAYS = 30
MONTHS_IN_TREND = 6
TOP_PERFORMERS = 5
RECENT_ACTIVITY = 10


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def average(values, digits=2):
    values = [v for v in values if v is not None]
    if not values:
        return 0
    return round(sum(values) / len(values), digits)


def percent(part, whole, digits=2):
    if not whole:
        return 0
    return round(part / whole * 100, digits)


def grade_percent(grade, max_grade):
    if grade is None:
        return None
    max_grade = max_grade or 100
    return min(round(grade / max_grade * 100, 2), 100.0)


def status_counts(records):
    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    for record in records:
        status = (record.status or "").upper()
        if status in counts:
            counts[status] += 1
    return counts


def weighted_attendance_rate(counts, total=None):
    """Weighted attendance in percent.

    ``total`` defaults to the number of marked records. Pass the session
    count instead when unmarked sessions should count as absences.
    """
    if total is None:
        total = sum(counts.get(status, 0) for status in ATTENDANCE_STATUSES)
    if not total:
        return 0
    weighted = sum(counts.get(status, 0) * weight for status, weight in ATTENDANCE_WEIGHTS.items())
    return round(weighted / total * 100, 2)


def best_attempts(attempts):
    """Map (quiz_id, student_id) to that student's highest attempt."""
    best = {}
    for attempt in attempts:
        key = (attempt.quiz_id_fk, attempt.student_id_fk)
        current = best.get(key)
        if current is None or (attempt.percentage or 0) > (current.percentage or 0):
            best[key] = attempt
    return best


def format_time_ago(moment, now=None):
    if moment is None:
        return ""
    now = now or utc_now()
    seconds = int((now - moment).total_seconds())
    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{seconds // 60} minutes ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    if seconds < 2592000:
        return f"{seconds // 86400} days ago"
    return f"{seconds // 2592000} months ago"


def month_windows(now=None, months=MONTHS_IN_TREND):
    """(label, start, end) for the last ``months`` calendar months, oldest first."""
    now = now or utc_now()
    windows = []
    for back in range(months - 1, -1, -1):
        index = now.year * 12 + (now.month - 1) - back
        start = datetime(index // 12, index % 12 + 1, 1)
        nxt = index + 1
        end = datetime(nxt // 12, nxt % 12 + 1, 1)
        windows.append((start.strftime("%b"), start, end))
    return windows


def _in_window(moment, start, end):
    return moment is not None and start <= moment < end


def _student_ref(user):
    if user is None:
        return {"student_id": None, "student_name": "", "student_email": ""}
    return {"student_id": user.user_id, "student_name": user.name, "student_email": user.email}


# ---------------------------------------------------------------------------
# Professor analytics
# ---------------------------------------------------------------------------

def overview(classes, now=None):
    now = now or utc_now()
    enrollments = [e for c in classes for e in c.enrollments]
    assignments = [a for c in classes for a in c.assignments]
    quizzes = [q for c in classes for q in c.quizzes]
    notes = [n for c in classes for n in c.notes]
    submissions = [s for a in assignments for s in a.submissions]
    attempts = [t for q in quizzes for t in q.attempts]

    enrolled_ids = {e.student_id_fk for e in enrollments}
    total_students = len(enrolled_ids)

    best_scores = [b.percentage or 0 for b in best_attempts(attempts).values()]
    assignment_grades = [
        grade_percent(s.grade, s.assignment.max_grade)
        for s in submissions if s.grade and s.grade > 0
    ]
    average_grade = average(best_scores + assignment_grades)

    # Rates count current enrollments only
    submitting = {s.student_id_fk for s in submissions} & enrolled_ids
    completion_rate = round(percent(len(submitting), total_students))

    cutoff = now - timedelta(days=ACTIVE_WINDOW_DAYS)
    active = {t.student_id_fk for t in attempts if t.started_at and t.started_at >= cutoff}
    active |= {s.student_id_fk for s in submissions if s.submitted_at and s.submitted_at >= cutoff}
    active_students = len(active & enrolled_ids)

    monthly_stats = []
    for label, start, end in month_windows(now):
        monthly_stats.append({
            "month": label,
            "students": sum(1 for e in enrollments if _in_window(e.enrolled_at, start, end)),
            "assignments": sum(1 for a in assignments if _in_window(a.created_at, start, end)),
            "quizzes": sum(1 for q in quizzes if _in_window(q.created_at, start, end)),
        })

    passing = [s for s in best_scores if s >= PASSING_SCORE]
    total_content = len(notes) + len(quizzes) + len(assignments)
    performance_metrics = {
        "student_engagement": round(percent(active_students, total_students)),
        "assignment_completion": completion_rate,
        "quiz_performance": round(percent(len(passing), len(best_scores))),
        "content_consumption": round(total_content / total_students) if total_students else 0,
    }

    return {
        "total_students": total_students,
        "total_classes": len(classes),
        "average_grade": average_grade,
        "completion_rate": completion_rate,
        "active_students": active_students,
        "total_assignments": len(assignments),
        "total_quizzes": len(quizzes),
        "total_notes": len(notes),
        "monthly_stats": monthly_stats,
        "performance_metrics": performance_metrics,
    }


def _top(rows, key):
    return sorted(rows, key=lambda r: r[key], reverse=True)[:TOP_PERFORMERS]


def class_breakdown(classroom):
    enrolled_ids = {e.student_id_fk for e in classroom.enrollments}
    enrolled = len(enrolled_ids)

    # Quizzes
    attempts = [t for q in classroom.quizzes for t in q.attempts]
    best = best_attempts(attempts)
    quiz_scores_by_student = defaultdict(list)
    attempts_by_student = defaultdict(int)
    students = {}
    for (_, student_id), attempt in best.items():
        quiz_scores_by_student[student_id].append(attempt.percentage or 0)
        students[student_id] = attempt.student
    for attempt in attempts:
        attempts_by_student[attempt.student_id_fk] += 1
    quiz_scores = [b.percentage or 0 for b in best.values()]
    quiz_top = _top([
        dict(_student_ref(students.get(sid)),
             average_score=average(scores),
             attempts_count=attempts_by_student[sid])
        for sid, scores in quiz_scores_by_student.items()
    ], "average_score")

    # Assignments
    submissions = [s for a in classroom.assignments for s in a.submissions]
    grades_by_student = defaultdict(list)
    submissions_by_student = defaultdict(int)
    for sub in submissions:
        submissions_by_student[sub.student_id_fk] += 1
        students[sub.student_id_fk] = sub.student
        if sub.grade is not None:
            grades_by_student[sub.student_id_fk].append(grade_percent(sub.grade, sub.assignment.max_grade))
    assignment_grades = [g for grades in grades_by_student.values() for g in grades]
    assignment_top = _top([
        dict(_student_ref(students.get(sid)),
             average_grade=average(grades_by_student.get(sid, [])),
             submissions_count=count)
        for sid, count in submissions_by_student.items()
    ], "average_grade")

    # Attendance
    sessions = classroom.attendance_sessions
    records = [r for s in sessions for r in s.records]
    counts = status_counts(records)
    records_by_student = defaultdict(list)
    for record in records:
        records_by_student[record.student_id_fk].append(record)
        students[record.student_id_fk] = record.student
    attendee_rows = []
    for sid, student_records in records_by_student.items():
        c = status_counts(student_records)
        attendee_rows.append(dict(
            _student_ref(students.get(sid)),
            attendance_rate=weighted_attendance_rate(c),
            present_sessions=c["PRESENT"],
            late_sessions=c["LATE"],
            excused_sessions=c["EXCUSED"],
            absent_sessions=c["ABSENT"],
        ))

    quiz_participants = len(enrolled_ids.intersection(quiz_scores_by_student))
    assignment_participants = len(enrolled_ids.intersection(submissions_by_student))
    attendance_participants = len(enrolled_ids.intersection(records_by_student))

    return {
        "class_id": classroom.class_id,
        "class_name": classroom.name,
        "class_code": classroom.code,
        "student_count": enrolled,
        "quiz_performance": {
            "total_quizzes": len(classroom.quizzes),
            "total_attempts": len(attempts),
            "average_score": average(quiz_scores),
            "completion_rate": percent(quiz_participants, enrolled),
            "top_performers": quiz_top,
        },
        "assignment_performance": {
            "total_assignments": len(classroom.assignments),
            "total_submissions": len(submissions),
            "average_grade": average(assignment_grades),
            "completion_rate": percent(assignment_participants, enrolled),
            "top_performers": assignment_top,
        },
        "attendance_performance": {
            "total_sessions": len(sessions),
            "average_attendance": weighted_attendance_rate(counts),
            "present_count": counts["PRESENT"],
            "absent_count": counts["ABSENT"],
            "late_count": counts["LATE"],
            "excused_count": counts["EXCUSED"],
            "top_attendees": _top(attendee_rows, "attendance_rate"),
        },
        "overall_performance": {
            "average_grade": average(quiz_scores + assignment_grades),
            "completion_rate": percent(max(quiz_participants, assignment_participants), enrolled),
            "engagement_score": percent(
                quiz_participants + assignment_participants + attendance_participants, enrolled * 3
            ),
        },
    }


def professor_classes(professor_id):
    return db.session.execute(
        select(Classroom).filter_by(professor_id_fk=professor_id).order_by(Classroom.created_at.asc())
    ).scalars().all()


def professor_analytics(professor_id, now=None):
    classes = professor_classes(professor_id)
    data = overview(classes, now=now)
    data["class_analytics"] = [class_breakdown(c) for c in classes]
    return data


def professor_dashboard_stats(professor_id, now=None):
    now = now or utc_now()
    classes = professor_classes(professor_id)
    quizzes = [q for c in classes for q in c.quizzes]
    attempts = [t for q in quizzes for t in q.attempts]
    submissions = [s for c in classes for a in c.assignments for s in a.submissions]
    notes = [n for c in classes for n in c.notes]

    best_scores = [b.percentage or 0 for b in best_attempts(attempts).values()]

    activity = []
    for attempt in sorted(attempts, key=lambda t: t.started_at or now, reverse=True)[:5]:
        activity.append({
            "id": f"quiz-{attempt.attempt_id}",
            "type": "quiz",
            "title": f"{attempt.student.name} completed {attempt.quiz.title}",
            "class": attempt.quiz.classroom.code,
            "score": attempt.percentage,
            "at": attempt.started_at,
        })
    for sub in sorted(submissions, key=lambda s: s.submitted_at or now, reverse=True)[:5]:
        activity.append({
            "id": f"assignment-{sub.submission_id}",
            "type": "assignment",
            "title": f"{sub.student.name} submitted {sub.assignment.title}",
            "class": sub.assignment.classroom.code,
            "at": sub.submitted_at,
        })
    published = [n for n in notes if n.status == "PUBLISHED"]
    for note in sorted(published, key=lambda n: n.created_at or now, reverse=True)[:5]:
        activity.append({
            "id": f"note-{note.note_id}",
            "type": "note",
            "title": f"Published: {note.title}",
            "class": note.classroom.code,
            "at": note.created_at,
        })
    activity.sort(key=lambda a: a["at"] or now, reverse=True)
    recent = []
    for item in activity[:RECENT_ACTIVITY]:
        at = item.pop("at")
        item["time"] = format_time_ago(at, now)
        recent.append(item)

    return {
        "total_classes": len(classes),
        "total_students": sum(len(c.enrollments) for c in classes),
        "total_notes": len(notes),
        "total_quizzes": len(quizzes),
        "total_assignments": sum(len(c.assignments) for c in classes),
        "average_score": round(average(best_scores)),
        "pending_submissions": sum(1 for s in submissions if s.grade is None),
        "recent_activity": recent,
    }


# ---------------------------------------------------------------------------
# Student analytics
# ---------------------------------------------------------------------------

def student_classes(student_id):
    return db.session.execute(
        select(Classroom).join(Enrollment, Enrollment.class_id_fk == Classroom.class_id)
        .filter(Enrollment.student_id_fk == student_id)
        .order_by(Classroom.name.asc())
    ).scalars().all()


def student_report(student, now=None):
    """Per-student performance across quizzes, assignments and attendance."""
    classes = student_classes(student.user_id)
    class_ids = [c.class_id for c in classes]

    attempts = db.session.execute(
        select(QuizAttempt).filter_by(student_id_fk=student.user_id).order_by(QuizAttempt.started_at.desc())
    ).scalars().all()
    submissions = db.session.execute(
        select(AssignmentSubmission).filter_by(student_id_fk=student.user_id)
        .order_by(AssignmentSubmission.submitted_at.desc())
    ).scalars().all()
    records = db.session.execute(
        select(AttendanceRecord).join(AttendanceSession)
        .filter(AttendanceRecord.student_id_fk == student.user_id)
        .order_by(AttendanceSession.session_date.desc())
    ).scalars().all()

    # Quiz performance, best attempt per quiz
    best = best_attempts(attempts)
    attempts_per_quiz = defaultdict(list)
    for attempt in attempts:
        attempts_per_quiz[attempt.quiz_id_fk].append(attempt)
    quiz_performance = []
    by_class = defaultdict(list)
    for (quiz_id, _), attempt in best.items():
        quiz = attempt.quiz
        quiz_performance.append({
            "quiz_id": quiz_id,
            "quiz_title": quiz.title,
            "class_name": quiz.classroom.name,
            "class_code": quiz.classroom.code,
            "score": attempt.score or 0,
            "max_score": quiz.total_points,
            "percentage": attempt.percentage or 0,
            "attempts": len(attempts_per_quiz[quiz_id]),
            "last_attempt_date": max(
                (a.started_at for a in attempts_per_quiz[quiz_id] if a.started_at), default=None
            ),
        })
        by_class[quiz.class_id_fk].append((quiz, attempt))
    for row in quiz_performance:
        row["last_attempt_date"] = row["last_attempt_date"].isoformat() if row["last_attempt_date"] else None

    subject_quiz_stats = []
    for class_id, items in by_class.items():
        classroom = items[0][0].classroom
        subject_quiz_stats.append({
            "class_name": classroom.name,
            "class_code": classroom.code,
            "total_quizzes": len(items),
            "total_attempts": sum(len(attempts_per_quiz[q.quiz_id]) for q, _ in items),
            "total_score": sum(a.score or 0 for _, a in items),
            "total_max_score": sum(q.total_points for q, _ in items),
            "average_percentage": average([a.percentage or 0 for _, a in items]),
        })

    submission_rows = [{
        "assignment_id": s.assignment_id_fk,
        "assignment_title": s.assignment.title,
        "class_name": s.assignment.classroom.name,
        "grade": s.grade,
        "max_grade": s.assignment.max_grade or 100,
        "submitted_at": s.submitted_at.isoformat() if s.submitted_at else None,
        "status": "graded" if s.grade is not None else "submitted",
    } for s in submissions]

    attendance_rows = [{
        "date": r.session.session_date.isoformat(),
        "status": r.status,
        "class_name": r.session.classroom.name,
        "reason": r.notes,
    } for r in records]

    records_by_class = defaultdict(list)
    for record in records:
        records_by_class[record.session.class_id_fk].append(record)
    subject_attendance_stats = []
    for classroom in classes:
        c = status_counts(records_by_class.get(classroom.class_id, []))
        subject_attendance_stats.append({
            "class_name": classroom.name,
            "class_code": classroom.code,
            "present": c["PRESENT"],
            "absent": c["ABSENT"],
            "late": c["LATE"],
            "excused": c["EXCUSED"],
            "total": sum(c.values()),
            "attendance_rate": weighted_attendance_rate(c),
        })

    assigned = content_counts(class_ids)
    enrolled_class_ids = set(class_ids)
    completed_quizzes = len({a.quiz_id_fk for a in attempts if a.quiz.class_id_fk in enrolled_class_ids})
    completed_assignments = len({
        s.assignment_id_fk for s in submissions if s.assignment.class_id_fk in enrolled_class_ids
    })

    graded = [grade_percent(s.grade, s.assignment.max_grade) for s in submissions if s.grade is not None]

    overall_stats = {
        "total_classes": len(classes),
        "total_quizzes": completed_quizzes,
        "total_assignments": completed_assignments,
        "total_attendance_sessions": len(records),
        "average_quiz_score": average([s["average_percentage"] for s in subject_quiz_stats]),
        "average_assignment_grade": average(graded),
        "attendance_rate": weighted_attendance_rate(status_counts(records)),
        "completion_rate": percent(
            completed_quizzes + completed_assignments, assigned["quizzes"] + assigned["assignments"]
        ),
    }

    return {
        "student": {"id": student.user_id, "name": student.name, "email": student.email},
        "classes": [{"id": c.class_id, "name": c.name, "code": c.code} for c in classes],
        "quiz_performance": quiz_performance,
        "subject_quiz_stats": subject_quiz_stats,
        "assignment_submissions": submission_rows,
        "attendance_records": attendance_rows,
        "subject_attendance_stats": subject_attendance_stats,
        "overall_stats": overall_stats,
    }


def student_dashboard_stats(student, now=None):
    now = now or utc_now()
    classes = student_classes(student.user_id)
    class_ids = [c.class_id for c in classes]
    attempts = db.session.execute(
        select(QuizAttempt).filter_by(student_id_fk=student.user_id)
    ).scalars().all()
    submissions = db.session.execute(
        select(AssignmentSubmission).filter_by(student_id_fk=student.user_id)
    ).scalars().all()

    best_by_quiz = {}
    for attempt in attempts:
        if attempt.quiz.class_id_fk not in class_ids:
            continue
        current = best_by_quiz.get(attempt.quiz_id_fk)
        if current is None or (attempt.percentage or 0) > current:
            best_by_quiz[attempt.quiz_id_fk] = attempt.percentage or 0

    upcoming = []
    if class_ids:
        horizon = now + timedelta(days=7)
        due_soon = db.session.execute(
            select(Assignment).filter(
                Assignment.class_id_fk.in_(class_ids),
                Assignment.status == "PUBLISHED",
                Assignment.due_date >= now,
                Assignment.due_date <= horizon,
            ).order_by(Assignment.due_date.asc())
        ).scalars().all()
        submitted = {s.assignment_id_fk: s for s in submissions}
        for a in due_soon:
            sub = submitted.get(a.assignment_id)
            upcoming.append({
                "id": f"assignment-{a.assignment_id}",
                "type": "assignment",
                "title": a.title,
                "class": a.classroom.code,
                "due_date": a.due_date.isoformat(),
                "completed": sub is not None,
                "graded": bool(sub and sub.grade is not None),
            })
        open_quizzes = db.session.execute(
            select(Quiz).filter(Quiz.class_id_fk.in_(class_ids), Quiz.status == "PUBLISHED")
            .order_by(Quiz.created_at.asc())
        ).scalars().all()
        for q in open_quizzes:
            upcoming.append({
                "id": f"quiz-{q.quiz_id}",
                "type": "quiz",
                "title": q.title,
                "class": q.classroom.code,
                "due_date": None,
                "completed": q.quiz_id in best_by_quiz,
            })
    upcoming = upcoming[:RECENT_ACTIVITY]

    activity = []
    for attempt in attempts:
        activity.append({
            "id": f"quiz-{attempt.attempt_id}",
            "type": "quiz",
            "title": attempt.quiz.title,
            "class": attempt.quiz.classroom.code,
            "score": attempt.percentage,
            "at": attempt.started_at,
        })
    for sub in submissions:
        activity.append({
            "id": f"assignment-{sub.submission_id}",
            "type": "assignment",
            "title": sub.assignment.title,
            "class": sub.assignment.classroom.code,
            "at": sub.submitted_at,
        })
    activity.sort(key=lambda a: a["at"] or now, reverse=True)
    recent = []
    for item in activity[:RECENT_ACTIVITY]:
        item["time"] = format_time_ago(item.pop("at"), now)
        recent.append(item)

    return {
        "enrolled_classes": len(classes),
        "total_quizzes": sum(len(c.quizzes) for c in classes),
        "completed_quizzes": len(best_by_quiz),
        "average_score": round(average(list(best_by_quiz.values()))),
        "total_assignments": sum(len(c.assignments) for c in classes),
        "completed_assignments": len({
            s.assignment_id_fk for s in submissions if s.assignment.class_id_fk in class_ids
        }),
        "upcoming_deadlines": upcoming,
        "recent_activity": recent,
    }


# ---------------------------------------------------------------------------
# Attendance reports
# ---------------------------------------------------------------------------

def attendance_student_rows(students, sessions, include_not_marked=True):
    """One row per student over ``sessions``, sorted by weighted rate.

    With ``include_not_marked`` the denominator is the number of sessions,
    so sessions without a record count against the student.
    """
    rows = []
    for student in students:
        student_records = []
        details = []
        for session in sessions:
            record = next((r for r in session.records if r.student_id_fk == student.user_id), None)
            if record is not None:
                student_records.append(record)
            details.append({
                "date": session.session_date.date().isoformat(),
                "title": session.title,
                "status": record.status if record else "NOT_MARKED",
            })
        c = status_counts(student_records)
        not_marked = len(sessions) - len(student_records)
        total = len(sessions) if include_not_marked else len(student_records)
        rows.append({
            "student_id": student.user_id,
            "student_name": student.name,
            "student_email": student.email,
            "total_sessions": total,
            "present": c["PRESENT"],
            "absent": c["ABSENT"],
            "late": c["LATE"],
            "excused": c["EXCUSED"],
            "not_marked": not_marked if include_not_marked else 0,
            "attendance_rate": weighted_attendance_rate(c, total),
            "sessions": details,
        })
    rows.sort(key=lambda r: r["attendance_rate"], reverse=True)
    return rows


def attendance_daily_stats(sessions):
    stats = []
    for session in sessions:
        c = status_counts(session.records)
        stats.append({
            "session_id": session.session_id,
            "date": session.session_date.isoformat(),
            "title": session.title,
            "present": c["PRESENT"],
            "absent": c["ABSENT"],
            "late": c["LATE"],
            "excused": c["EXCUSED"],
            "total": len(session.records),
        })
    return stats


def sessions_between(class_id, start=None, end=None, professor_id=None):
    q = select(AttendanceSession).filter(AttendanceSession.class_id_fk == class_id)
    if professor_id is not None:
        q = q.filter(AttendanceSession.professor_id_fk == professor_id)
    if start is not None:
        q = q.filter(AttendanceSession.session_date >= start)
    if end is not None:
        q = q.filter(AttendanceSession.session_date <= end)
    return db.session.execute(q.order_by(AttendanceSession.session_date.asc())).scalars().all()


def enrolled_students(class_id):
    enrollments = db.session.execute(
        select(Enrollment).filter_by(class_id_fk=class_id).order_by(Enrollment.enrolled_at.asc())
    ).scalars().all()
    return [e.student for e in enrollments]


def attendance_class_report(classroom, start, end):
    """Printable report for a class over [start, end]."""
    sessions = sessions_between(classroom.class_id, start, end)
    rows = attendance_student_rows(enrolled_students(classroom.class_id), sessions, include_not_marked=True)
    for row in rows:
        row.pop("sessions", None)
    return {
        "class_id": classroom.class_id,
        "class_name": classroom.name,
        "class_code": classroom.code,
        "teacher_name": classroom.professor.name if classroom.professor else "",
        "date_range": {"start": start.date().isoformat(), "end": end.date().isoformat()},
        "total_students": len(rows),
        "total_sessions": len(sessions),
        "average_attendance": average([r["attendance_rate"] for r in rows]),
        "total_present": sum(r["present"] for r in rows),
        "total_absent": sum(r["absent"] for r in rows),
        "total_late": sum(r["late"] for r in rows),
        "total_excused": sum(r["excused"] for r in rows),
        "student_stats": rows,
        "daily_stats": attendance_daily_stats(sessions),
    }


def personal_attendance(sessions, student_id):
    """Attendance of a single student over ``sessions`` (newest first)."""
    records = []
    details = []
    for session in sorted(sessions, key=lambda s: s.session_date, reverse=True):
        record = next((r for r in session.records if r.student_id_fk == student_id), None)
        if record is not None:
            records.append(record)
        details.append({
            "id": session.session_id,
            "date": session.session_date.isoformat(),
            "title": session.title,
            "status": record.status if record else "NOT_MARKED",
            "marked_at": record.marked_at.isoformat() if record and record.marked_at else None,
        })
    c = status_counts(records)
    return {
        "total_sessions": len(sessions),
        "present": c["PRESENT"],
        "absent": c["ABSENT"],
        "late": c["LATE"],
        "excused": c["EXCUSED"],
        "not_marked": len(sessions) - len(records),
        "attendance_rate": weighted_attendance_rate(c, len(sessions)),
        "sessions": details,
    }


def class_attendance_overview(sessions, students):
    student_stats = []
    all_records = [r for s in sessions for r in s.records]
    for student in students:
        mine = [r for r in all_records if r.student_id_fk == student.user_id]
        c = status_counts(mine)
        student_stats.append({
            "student": {"id": student.user_id, "name": student.name, "email": student.email},
            "present": c["PRESENT"],
            "absent": c["ABSENT"],
            "late": c["LATE"],
            "excused": c["EXCUSED"],
            "total": len(mine),
            "attendance_rate": weighted_attendance_rate(c),
        })
    enrolled_ids = {s.user_id for s in students}
    totals = status_counts([r for r in all_records if r.student_id_fk in enrolled_ids])
    return {
        "total_sessions": len(sessions),
        "total_students": len(students),
        "total_present": totals["PRESENT"],
        "total_absent": totals["ABSENT"],
        "total_late": totals["LATE"],
        "total_excused": totals["EXCUSED"],
        "overall_attendance_rate": weighted_attendance_rate(totals),
        "student_stats": student_stats,
        "sessions": [dict(
            {"id": s.session_id, "date": s.session_date.isoformat(), "title": s.title,
             "total_records": len(s.records)},
            **{k.lower(): v for k, v in status_counts(s.records).items()}
        ) for s in sorted(sessions, key=lambda s: s.session_date, reverse=True)],
    }


# ---------------------------------------------------------------------------
# Quiz and practice statistics
# ---------------------------------------------------------------------------

def quiz_statistics(quiz):
    attempts = sorted(quiz.attempts, key=lambda a: a.completed_at or a.started_at or datetime.min, reverse=True)
    completed = [a for a in attempts if a.completed_at]
    scores = [a.percentage or 0 for a in completed]

    question_stats = []
    for question in quiz.questions:
        answers = [ans for a in attempts for ans in a.answers if ans.question_id_fk == question.question_id]
        correct = sum(1 for ans in answers if ans.is_correct)
        question_stats.append({
            "question_id": question.question_id,
            "question_text": question.text,
            "correct_answers": correct,
            "total_answers": len(answers),
            "success_rate": percent(correct, len(answers)),
        })

    return {
        "id": quiz.quiz_id,
        "title": quiz.title,
        "total_attempts": len(attempts),
        "unique_students": len({a.student_id_fk for a in attempts}),
        "average_score": average(scores, 1),
        "highest_score": round(max(scores)) if scores else 0,
        "lowest_score": round(min(scores)) if scores else 0,
        "completion_rate": percent(len(completed), len(attempts), 1),
        "average_time_spent": round(average([a.time_spent or 0 for a in completed])),
        "question_stats": question_stats,
        "recent_attempts": [{
            "id": a.attempt_id,
            "student_name": a.student.name if a.student else "",
            "score": round(a.percentage or 0),
            "time_spent": a.time_spent or 0,
            "completed_at": a.completed_at.isoformat() if a.completed_at else "",
        } for a in attempts[:10]],
    }


def practice_student_stats(attempts, total_questions):
    correct = sum(1 for a in attempts if a.is_correct)
    earned = sum(a.score or 0 for a in attempts)
    possible = sum(a.question.points or 0 for a in attempts)
    return {
        "total_attempts": len(attempts),
        "questions_attempted": len({a.question_id_fk for a in attempts}),
        "total_questions": total_questions,
        "correct_attempts": correct,
        "accuracy": percent(correct, len(attempts)),
        "average_score": percent(earned, possible),
        "total_time_spent": sum(a.time_spent or 0 for a in attempts),
    }


def practice_teacher_stats(questions, now=None):
    attempts = sorted(
        [a for q in questions for a in q.attempts],
        key=lambda a: a.attempted_at or datetime.min, reverse=True,
    )
    per_question = []
    for q in questions:
        correct = sum(1 for a in q.attempts if a.is_correct)
        per_question.append({
            "question_id": q.practice_question_id,
            "text": q.text,
            "difficulty": q.difficulty,
            "attempts": len(q.attempts),
            "success_rate": percent(correct, len(q.attempts)),
        })
    by_student = defaultdict(list)
    for a in attempts:
        by_student[a.student_id_fk].append(a)
    per_student = []
    for sid, items in by_student.items():
        correct = sum(1 for a in items if a.is_correct)
        per_student.append(dict(
            _student_ref(items[0].student),
            attempts=len(items),
            accuracy=percent(correct, len(items)),
        ))
    per_student.sort(key=lambda r: r["accuracy"], reverse=True)
    earned = sum(a.score or 0 for a in attempts)
    possible = sum(a.question.points or 0 for a in attempts)
    return {
        "total_questions": len(questions),
        "total_attempts": len(attempts),
        "average_score": percent(earned, possible),
        "total_time_spent": sum(a.time_spent or 0 for a in attempts),
        "question_stats": per_question,
        "student_stats": per_student,
        "recent_activity": [{
            "id": a.attempt_id,
            "title": f"{a.student.name if a.student else 'A student'} answered a {(a.question.difficulty or '').lower()} question",
            "time": format_time_ago(a.attempted_at, now),
            "is_correct": bool(a.is_correct),
        } for a in attempts[:RECENT_ACTIVITY]],
    }


def content_counts(class_ids):
    if not class_ids:
        return {"notes": 0, "quizzes": 0, "assignments": 0}
    return {
        "notes": db.session.query(Note).filter(Note.class_id_fk.in_(class_ids)).count(),
        "quizzes": db.session.query(Quiz).filter(Quiz.class_id_fk.in_(class_ids)).count(),
        "assignments": db.session.query(Assignment).filter(Assignment.class_id_fk.in_(class_ids)).count(),
    }
