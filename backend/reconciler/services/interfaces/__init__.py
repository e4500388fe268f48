"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .email_sender import EmailSender
from .logging_sender import LoggingEmailSender

__all__ = ['EmailSender', 'LoggingEmailSender']
