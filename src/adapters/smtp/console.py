"""
Log-only delivery of registration code emails.

The email is rendered in full and written to the application log; an
operator (or a test reading the log) relays the code. Swapping this for
a mail transport only needs another EmailSender implementation.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SUBJECT = "Código de verificación de registro profesional"


@dataclass(frozen=True)
class CodeEmail:
    to: str
    subject: str
    body: str


def render_code_email(email: str, code: str, valid_hours: int) -> CodeEmail:
    body = (
        f"Tu código de verificación es {code}.\n"
        f"Ingrésalo en el formulario de registro. La solicitud vence en {valid_hours} horas.\n"
        "Si no iniciaste este registro, ignora este mensaje."
    )
    return CodeEmail(to=email, subject=SUBJECT, body=body)


class ConsoleEmailSender:
    """EmailSender that logs the rendered message instead of mailing it."""

    def __init__(self, valid_hours: int = 24) -> None:
        self.valid_hours = valid_hours

    def send_verification_code(self, email: str, code: str) -> None:
        message = render_code_email(email, code, self.valid_hours)
        logger.info("Registration email to=%s subject=%r code=%s", message.to, message.subject, code)
        logger.debug("Registration email body for %s:\n%s", message.to, message.body)
