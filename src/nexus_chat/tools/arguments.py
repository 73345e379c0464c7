"""Argument schemas for the CRM tools.

Each tool has one model. Its JSON schema is what the model is shown, and the
tool execution layer validates incoming arguments against it before dispatch.
Unknown argument names are ignored.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nexus_chat.tools.crm_models import (
    ContactStatus,
    InteractionType,
    TaskFrequency,
    TaskPriority,
)

StatsMetric = Literal[
    "all",
    "overview",
    "interactionsByType",
    "contactsByStatus",
    "upcomingBirthdays",
    "overdueTasks",
    "recentActivity",
]


class ToolArguments(BaseModel):
    """Base model for tool arguments (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ContactRef(ToolArguments):
    contact_id: str | None = Field(None, description="The ID of the contact")
    contact_name: str | None = Field(
        None, description="The name of the contact (used if ID is not known)"
    )


# Query tools


class SearchContactsArgs(ToolArguments):
    query: str | None = Field(
        None, description="Search term to match against name, company, email, or tags"
    )
    status: Literal["active", "drifting", "lost", "all"] | None = Field(
        None, description="Filter by contact status"
    )
    tags: list[str] | None = Field(None, description="Filter by tags (matches any)")
    limit: int = Field(10, ge=1, description="Maximum number of results to return")


class GetContactDetailsArgs(ContactRef):
    pass


class SearchInteractionsArgs(ContactRef):
    type: InteractionType | None = Field(None, description="Filter by interaction type")
    start_date: str | None = Field(
        None, description="Start date for date range filter (YYYY-MM-DD)"
    )
    end_date: str | None = Field(None, description="End date for date range filter (YYYY-MM-DD)")
    query: str | None = Field(None, description="Search term to match in interaction notes")
    limit: int = Field(20, ge=1, description="Maximum number of results")


class SearchTasksArgs(ContactRef):
    completed: bool | None = Field(None, description="Filter by completion status")
    priority: TaskPriority | None = Field(None, description="Filter by priority level")
    due_before: str | None = Field(None, description="Tasks due before this date (YYYY-MM-DD)")
    due_after: str | None = Field(None, description="Tasks due after this date (YYYY-MM-DD)")
    overdue: bool | None = Field(None, description="If true, only show overdue tasks")
    limit: int = Field(20, ge=1, description="Maximum number of results")


class GetStatsArgs(ToolArguments):
    metric: StatsMetric = Field(
        ...,
        description=(
            "The type of statistic to retrieve. Use \"all\" for comprehensive stats in one call."
        ),
    )


# Write tools


class AddContactArgs(ToolArguments):
    first_name: str = Field(..., description="First name of the contact")
    last_name: str = Field(..., description="Last name of the contact")
    email: str | None = Field(None, description="Email address")
    phone: str | None = Field(None, description="Phone number")
    company: str | None = Field(None, description="Company or organization name")
    position: str | None = Field(None, description="Job title or position")
    tags: list[str] | None = Field(None, description="Tags to categorize the contact")
    notes: str | None = Field(
        None,
        description=(
            "Initial notes about the contact - include how you met, mutual connections, "
            "shared history"
        ),
    )
    birthday: str | None = Field(None, description="Birthday in MM-DD format")
    related_contact_names: list[str] | None = Field(
        None,
        description="Names of related contacts. The system will look up their IDs.",
    )


class AddInteractionArgs(ContactRef):
    type: InteractionType = Field(..., description="Type of interaction")
    notes: str = Field(..., description="Notes about the interaction")
    date: str | None = Field(
        None, description="Date of the interaction (YYYY-MM-DD). Defaults to today."
    )


class AddTaskArgs(ContactRef):
    title: str = Field(..., description="Title of the task/reminder")
    description: str | None = Field(None, description="Detailed description of the task")
    due_date: str | None = Field(None, description="Due date (YYYY-MM-DD)")
    due_time: str | None = Field(None, description="Due time in 24-hour format (HH:MM)")
    priority: TaskPriority = Field("medium", description="Priority level")
    frequency: TaskFrequency = Field("none", description="Recurring frequency")


class ContactUpdates(ToolArguments):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    position: str | None = None
    tags: list[str] | None = None
    notes: str | None = None
    birthday: str | None = Field(None, description="Birthday in MM-DD format")
    status: ContactStatus | None = None
    related_contact_names: list[str] | None = Field(
        None, description="Names of related contacts to link. The system will look up their IDs."
    )


class UpdateContactArgs(ContactRef):
    updates: ContactUpdates = Field(..., description="Fields to update")


class TaskUpdates(ToolArguments):
    title: str | None = None
    description: str | None = None
    completed: bool | None = None
    priority: TaskPriority | None = None
    due_date: str | None = None


class UpdateTaskArgs(ToolArguments):
    task_id: str | None = Field(None, description="ID of the task to update")
    task_title: str | None = Field(None, description="Title of the task (used if ID not known)")
    updates: TaskUpdates = Field(..., description="Fields to update")
