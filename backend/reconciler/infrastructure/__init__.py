"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .email_client import HttpEmailSender

__all__ = ['HttpEmailSender']
