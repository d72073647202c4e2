import smtplib
from email.message import EmailMessage

from flask import current_app


def send_email(to_email: str, subject: str, body: str, html: str = None, cc: str = None):
    """Send one message over SMTP. Returns (ok, error); never raises."""
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        current_app.logger.info("Email not configured, skipping '%s' to %s", subject, to_email)
        return False, "Email not configured"
    if not to_email:
        return False, "No recipient"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    if cc:
        msg["Cc"] = cc
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.warning("Email '%s' to %s failed: %s", subject, to_email, exc)
        return False, str(exc)
