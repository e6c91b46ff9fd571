"""Storage-specific exceptions."""


class StorageError(Exception):
    """Base exception for storage operations."""


class DatabaseError(StorageError):
    """Database connection or query failure."""


class MigrationError(StorageError):
    """Schema migration failure."""


class ChatNotFoundError(StorageError):
    """Requested chat ID does not exist."""

    def __init__(self, chat_id: str) -> None:
        self.chat_id = chat_id
        super().__init__(f"Chat {chat_id} not found")
