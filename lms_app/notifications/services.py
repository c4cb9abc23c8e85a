from flask import current_app
from .. import db
from ..email_utils import send_template_email
from ..models import Notification


def notify(user_ids, title, message, notification_type="general"):
    """Queue in-app notifications; the caller commits."""
    created = []
    for user_id in dict.fromkeys(user_ids):
        n = Notification(user_id_fk=user_id, title=title, message=message, notification_type=notification_type)
        db.session.add(n)
        created.append(n)
    return created


def email_users(users, template_name, subject=None, **context):
    """Send one templated email per user; returns how many were delivered."""
    sent = 0
    for user in users:
        if not getattr(user, "email", None):
            continue
        if send_template_email(user.email, template_name, subject=subject, recipient=user, **context):
            sent += 1
    if users and not sent:
        current_app.logger.info(f"No '{template_name}' emails delivered to {len(users)} recipient(s)")
    return sent


def announce_to_class(classroom, title, message, notification_type):
    """Queue a notification for every student enrolled in ``classroom``.

    Returns the students so the caller can email them once its commit succeeds.
    """
    students = [e.student for e in classroom.enrollments if e.student is not None]
    notify([s.user_id for s in students], title, message, notification_type)
    return students
