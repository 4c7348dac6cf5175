import logging

logger = logging.getLogger(__name__)


# Email sending stub (writes to the log)

def send_email(to: str, subject: str, body: str) -> None:
    logger.info("[Email] To: %s | Subject: %s | Body: %s", to, subject, body)
