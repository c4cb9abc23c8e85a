import re
import smtplib
from email.message import EmailMessage
from flask import current_app, render_template

TEMPLATE_SUBJECTS = {
    "welcome": "Welcome to the learning platform",
    "password_reset": "Reset your password",
    "class_invitation": "You have been invited to join a class",
    "new_note": "New note published",
    "new_quiz": "New quiz available",
    "new_assignment": "New assignment posted",
    "assignment_submitted": "New assignment submission",
    "assignment_graded": "Your assignment has been graded",
    "analytics_summary": "Analytics report",
}


def send_email(subject: str, to_address: str, text_body: str, html_body: str = None, attachments=None) -> bool:
    """Send an email using SMTP settings from Flask app config.

    Expected config keys:
      MAIL_HOST, MAIL_PORT, MAIL_USER, MAIL_PASSWORD, MAIL_FROM,
      MAIL_USE_TLS (default True), MAIL_USE_SSL (default False)

    ``attachments`` is an iterable of ``(filename, content, mimetype)``
    tuples; ``content`` may be ``str`` or ``bytes``.
    """
    cfg = current_app.config
    host = cfg.get("MAIL_HOST")
    port = int(cfg.get("MAIL_PORT", 587))
    user = cfg.get("MAIL_USER")
    password = cfg.get("MAIL_PASSWORD")
    mail_from = cfg.get("MAIL_FROM") or user or "noreply@example.com"
    use_tls = bool(cfg.get("MAIL_USE_TLS", True))
    use_ssl = bool(cfg.get("MAIL_USE_SSL", False))

    if not host:
        current_app.logger.warning("MAIL_HOST not configured; skipping email send.")
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = mail_from
    msg["To"] = to_address
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    for filename, content, mimetype in (attachments or []):
        maintype, _, subtype = (mimetype or "application/octet-stream").partition("/")
        if isinstance(content, str):
            msg.add_attachment(content, subtype=subtype, filename=filename)
        else:
            msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)

    try:
        if use_ssl:
            with smtplib.SMTP_SSL(host, port) as server:
                if user and password:
                    server.login(user, password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port) as server:
                if use_tls:
                    server.starttls()
                if user and password:
                    server.login(user, password)
                server.send_message(msg)
        current_app.logger.info(f"Email '{subject}' sent to {to_address}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error(f"Failed to send email to {to_address}: {e}")
        return False


def send_template_email(to_address: str, template_name: str, subject: str = None, **context) -> bool:
    html_body = render_template(f"emails/{template_name}.html", **context)
    text_body = context.get("text_body") or _strip_html(html_body)
    return send_email(subject or TEMPLATE_SUBJECTS.get(template_name, "Notification"), to_address, text_body, html_body)


def _strip_html(html):
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", html, flags=re.S | re.I)
    text = re.sub(r"<br\s*/?>|</p>|</h\d>|</li>|</tr>", "\n", text, flags=re.I)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    return text.strip()
