"""
Email Provider Package
"""
from leadflow.infrastructure.connectors.email.base import EmailProvider, EmailMessage, EmailSendError
from leadflow.infrastructure.connectors.email.smtp import SMTPEmailProvider

__all__ = ["EmailProvider", "EmailMessage", "EmailSendError", "SMTPEmailProvider"]
