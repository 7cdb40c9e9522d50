"""
Repository subpackage for the deduplication feature.
"""

from .email_repository import EmailRepository, EmailRepositoryError

__all__ = ["EmailRepository", "EmailRepositoryError"]
