"""CRM data model exposed to the chat tools.

Field names are snake_case in Python and camelCase on the wire, which is the
shape the model sees in tool results and the shape the CRM backend stores.
"""

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ContactStatus = Literal["active", "drifting", "lost"]
InteractionType = Literal["Meeting", "Call", "Email", "Coffee", "Event", "Other"]
TaskPriority = Literal["low", "medium", "high"]
TaskFrequency = Literal["none", "daily", "weekly", "biweekly", "monthly", "quarterly", "yearly"]


class CRMModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump to the camelCase JSON shape used in tool results."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Contact(CRMModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    position: str = ""
    tags: list[str] = Field(default_factory=list)
    last_contacted: str | None = None
    next_follow_up: str | None = None
    notes: str = ""
    avatar: str = ""
    status: ContactStatus = "active"
    related_contact_ids: list[str] = Field(default_factory=list)
    birthday: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Interaction(CRMModel):
    id: str
    contact_id: str
    date: str
    type: InteractionType = "Other"
    notes: str = ""


class Task(CRMModel):
    id: str
    title: str
    description: str | None = None
    contact_id: str | None = None
    due_date: str | None = None
    due_time: str | None = None
    completed: bool = False
    priority: TaskPriority = "medium"
    frequency: TaskFrequency = "none"
    created_at: str | None = None


class CRMData(CRMModel):
    """Snapshot of one user's CRM records."""

    contacts: list[Contact] = Field(default_factory=list)
    interactions: list[Interaction] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)


def parse_date(value: str | None) -> date | None:
    """Parse the date part of an ISO date or datetime string.

    Returns:
        The parsed date, or None when the value is empty or malformed.
    """
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def find_contact(
    contacts: list[Contact], contact_id: str | None = None, contact_name: str | None = None
) -> Contact | None:
    """Find a contact by exact id, else by case-insensitive partial name.

    Args:
        contacts: Contacts to search.
        contact_id: Exact contact id. Takes precedence over the name.
        contact_name: Partial first, last or full name.

    Returns:
        The first matching contact or None.
    """
    if contact_id:
        return next((c for c in contacts if c.id == contact_id), None)
    if contact_name:
        name = contact_name.lower()
        for contact in contacts:
            if (
                name in contact.full_name.lower()
                or name in contact.first_name.lower()
                or name in contact.last_name.lower()
            ):
                return contact
    return None


def find_task(
    tasks: list[Task], task_id: str | None = None, task_title: str | None = None
) -> Task | None:
    """Find a task by exact id, else by case-insensitive partial title."""
    if task_id:
        return next((t for t in tasks if t.id == task_id), None)
    if task_title:
        title = task_title.lower()
        return next((t for t in tasks if title in t.title.lower()), None)
    return None


def is_overdue(task: Task, today: date) -> bool:
    due = parse_date(task.due_date)
    return not task.completed and due is not None and due < today
