"""
Base Repository - shared plumbing for the Supabase tables.

Repositories receive the database client in the constructor, so tests pass
an in-memory double instead of patching imports.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any

from inbox.core.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class BaseRepository(ABC):
    """
    Base class for repositories.

    Attributes:
        db: database client (Supabase, in-memory double, ...)
        table_name: table backing the repository

    Example:
        class FacebookMessageRepository(MessageRepository):
            @property
            def table_name(self) -> str:
                return "facebook_messages"
    """

    def __init__(self, db_client: Any):
        """
        Args:
            db_client: database client (Supabase, mock, ...)
        """
        self.db = db_client

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Table name."""
        pass

    def table(self):
        return self.db.table(self.table_name)

    def execute(self, query, operation: str, **context) -> list[dict]:
        """
        Run a built query and return its rows.

        Any failure is logged with context and re-raised as DatabaseError.
        No retry here: the next sync pass is the retry.

        Args:
            query: supabase query builder, ready to execute
            operation: short label for logs ("upsert", "get_conversations", ...)
            **context: extra fields for the log record
        """
        try:
            response = query.execute()
        except Exception as e:
            logger.error(
                f"Error in {self.table_name}.{operation}: {e}",
                extra={"table": self.table_name, "operation": operation, **context},
            )
            raise DatabaseError(
                f"{operation} failed on {self.table_name}",
                details={"table": self.table_name, **context},
                original_error=e,
            ) from e
        return response.data or []
