"""Domain exceptions raised by the business layer."""
from typing import Any, Iterable, Mapping


class BookstoreError(Exception):
    """Base exception for business errors."""

    pass


class NotFoundError(BookstoreError):
    """Raised when the requested product or order does not exist."""

    def __init__(self, entity: str, entity_id: int | str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} was not found")


class ValidationError(BookstoreError):
    """Raised when input fails business validation."""

    pass


def reject_null_fields(data: Mapping[str, Any], required: Iterable[str]) -> None:
    """Raise ValidationError if any ``required`` key is present with a None value."""
    nulls = [name for name in required if name in data and data[name] is None]
    if nulls:
        raise ValidationError(f"Fields must not be null: {', '.join(nulls)}")
