"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity.
"""

from dataclasses import dataclass
from typing import Any, Self
from uuid import uuid4

from budgetflow.domain.base import ValueObject
from budgetflow.domain.exceptions import ValidationError


# ============================================================================
# Typed Identifiers
# ============================================================================


@dataclass(frozen=True)
class BudgetId(ValueObject):
    """Strongly-typed budget identifier.

    Budgets created by this service get a UUID; identifiers coming from
    an upstream system are kept as opaque strings.
    """

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValidationError("budget_id", "must not be empty")

    @classmethod
    def generate(cls) -> Self:
        """Generate a new budget ID.

        Returns:
            New BudgetId with random UUID.
        """
        return cls(value=str(uuid4()))

    def __str__(self) -> str:
        return self.value


# ============================================================================
# User Reference
# ============================================================================


@dataclass(frozen=True)
class UserRef(ValueObject):
    """Reference to the user who performed an action.

    Identity lives in an external user directory; only what is needed to
    display "who did this" is kept here.

    Attributes:
        id: External user identifier.
        first_name: Given name.
        last_name: Family name.
        email: Contact email.
    """

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValidationError("user.id", "must not be empty")
        if "@" not in self.email:
            raise ValidationError("user.email", f"'{self.email}' is not an email address")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            id=data["id"],
            email=data["email"],
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
        )
