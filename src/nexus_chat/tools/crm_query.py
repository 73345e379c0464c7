"""Read-only CRM tools.

Pure functions over the CRMData snapshot in the ToolContext. Results are
returned in the camelCase wire shape the model sees.
"""

from datetime import date
from typing import Any

from nexus_chat.tools.arguments import (
    GetContactDetailsArgs,
    GetStatsArgs,
    SearchContactsArgs,
    SearchInteractionsArgs,
    SearchTasksArgs,
)
from nexus_chat.tools.crm_models import (
    Contact,
    Interaction,
    find_contact,
    is_overdue,
    parse_date,
)
from nexus_chat.tools.executor import ToolExecutionError
from nexus_chat.tools.types import ToolContext, ToolDefinition, parameters_schema

RECENT_INTERACTIONS_IN_DETAILS = 5
RECENT_ACTIVITY_LIMIT = 10
BIRTHDAY_WINDOW_DAYS = 30
NOTES_PREVIEW_LENGTH = 50


def _newest_first(interactions: list[Interaction]) -> list[Interaction]:
    return sorted(interactions, key=lambda i: parse_date(i.date) or date.min, reverse=True)


# searchContacts

search_contacts_tool = ToolDefinition(
    name="searchContacts",
    description=(
        "Search contacts by name, company, email, tags, or status. Use this to find contact "
        "information. For interaction history (meetings, calls, emails), use "
        "searchInteractions instead."
    ),
    category="query",
    parameters=parameters_schema(SearchContactsArgs),
)


def search_contacts_executor(args: SearchContactsArgs, ctx: ToolContext) -> list[dict[str, Any]]:
    results = list(ctx.data.contacts)

    if args.query:
        q = args.query.lower()
        results = [
            c
            for c in results
            if q in c.full_name.lower()
            or q in c.email.lower()
            or q in c.company.lower()
            or any(q in tag.lower() for tag in c.tags)
        ]

    if args.status and args.status != "all":
        results = [c for c in results if c.status == args.status]

    if args.tags:
        wanted = [t.lower() for t in args.tags]
        results = [c for c in results if any(w in tag.lower() for tag in c.tags for w in wanted)]

    return [c.to_wire() for c in results[: args.limit]]


# getContactDetails

get_contact_details_tool = ToolDefinition(
    name="getContactDetails",
    description=(
        "Get full details of a specific contact including their recent interactions and tasks"
    ),
    category="query",
    parameters=parameters_schema(GetContactDetailsArgs),
)


def get_contact_details_executor(args: GetContactDetailsArgs, ctx: ToolContext) -> dict[str, Any]:
    contact = find_contact(ctx.data.contacts, args.contact_id, args.contact_name)
    if contact is None:
        raise ToolExecutionError("Contact not found")

    recent = _newest_first([i for i in ctx.data.interactions if i.contact_id == contact.id])
    pending = [t for t in ctx.data.tasks if t.contact_id == contact.id and not t.completed]
    return {
        "contact": contact.to_wire(),
        "recentInteractions": [i.to_wire() for i in recent[:RECENT_INTERACTIONS_IN_DETAILS]],
        "pendingTasks": [t.to_wire() for t in pending],
    }


# searchInteractions

search_interactions_tool = ToolDefinition(
    name="searchInteractions",
    description=(
        "Search interaction history (meetings, calls, emails, coffee chats, events). Use this "
        'when asked about past activities, conversations, or "what did I do with someone". '
        "Can filter by contact name, type, date range, or content."
    ),
    category="query",
    parameters=parameters_schema(SearchInteractionsArgs),
)


def search_interactions_executor(
    args: SearchInteractionsArgs, ctx: ToolContext
) -> list[dict[str, Any]]:
    results = list(ctx.data.interactions)

    if args.contact_id:
        results = [i for i in results if i.contact_id == args.contact_id]
    elif args.contact_name:
        # An unmatched name leaves the list unfiltered
        contact = find_contact(ctx.data.contacts, contact_name=args.contact_name)
        if contact is not None:
            results = [i for i in results if i.contact_id == contact.id]

    if args.type:
        results = [i for i in results if i.type == args.type]

    start = parse_date(args.start_date)
    if start:
        results = [i for i in results if (parse_date(i.date) or date.min) >= start]

    end = parse_date(args.end_date)
    if end:
        results = [i for i in results if (parse_date(i.date) or date.max) <= end]

    if args.query:
        q = args.query.lower()
        results = [i for i in results if q in i.notes.lower()]

    return [i.to_wire() for i in _newest_first(results)[: args.limit]]


# searchTasks

search_tasks_tool = ToolDefinition(
    name="searchTasks",
    description="Search tasks by status, priority, contact, or due date",
    category="query",
    parameters=parameters_schema(SearchTasksArgs),
)


def search_tasks_executor(args: SearchTasksArgs, ctx: ToolContext) -> list[dict[str, Any]]:
    results = list(ctx.data.tasks)

    if args.completed is not None:
        results = [t for t in results if t.completed == args.completed]

    if args.priority:
        results = [t for t in results if t.priority == args.priority]

    if args.contact_id:
        results = [t for t in results if t.contact_id == args.contact_id]
    elif args.contact_name:
        contact = find_contact(ctx.data.contacts, contact_name=args.contact_name)
        if contact is not None:
            results = [t for t in results if t.contact_id == contact.id]

    due_before = parse_date(args.due_before)
    if due_before:
        results = [t for t in results if (d := parse_date(t.due_date)) and d <= due_before]

    due_after = parse_date(args.due_after)
    if due_after:
        results = [t for t in results if (d := parse_date(t.due_date)) and d >= due_after]

    if args.overdue:
        results = [t for t in results if is_overdue(t, ctx.today)]

    return [t.to_wire() for t in results[: args.limit]]


# getStats

get_stats_tool = ToolDefinition(
    name="getStats",
    description=(
        'Get CRM statistics and metrics for analytics. Use metric="all" to get a comprehensive '
        "overview in a single call (recommended for general stats questions)."
    ),
    category="query",
    parameters=parameters_schema(GetStatsArgs),
)


def _status_counts(contacts: list[Contact]) -> dict[str, int]:
    return {
        status: sum(1 for c in contacts if c.status == status)
        for status in ("active", "drifting", "lost")
    }


def _overview(ctx: ToolContext) -> dict[str, Any]:
    data = ctx.data
    by_status = _status_counts(data.contacts)
    return {
        "totalContacts": len(data.contacts),
        "activeContacts": by_status["active"],
        "driftingContacts": by_status["drifting"],
        "lostContacts": by_status["lost"],
        "totalInteractions": len(data.interactions),
        "totalTasks": len(data.tasks),
        "pendingTasks": sum(1 for t in data.tasks if not t.completed),
        "overdueTasks": sum(1 for t in data.tasks if is_overdue(t, ctx.today)),
    }


def _interactions_by_type(ctx: ToolContext) -> dict[str, int]:
    counts: dict[str, int] = {}
    for interaction in ctx.data.interactions:
        counts[interaction.type] = counts.get(interaction.type, 0) + 1
    return counts


def _overdue_tasks(ctx: ToolContext) -> list[dict[str, Any]]:
    return [
        {"id": t.id, "title": t.title, "dueDate": t.due_date, "priority": t.priority}
        for t in ctx.data.tasks
        if is_overdue(t, ctx.today)
    ]


def _recent_activity(ctx: ToolContext) -> list[dict[str, Any]]:
    names = {c.id: c.full_name for c in ctx.data.contacts}
    activity = []
    for interaction in _newest_first(ctx.data.interactions)[:RECENT_ACTIVITY_LIMIT]:
        notes = interaction.notes
        if len(notes) > NOTES_PREVIEW_LENGTH:
            notes = notes[:NOTES_PREVIEW_LENGTH] + "..."
        activity.append(
            {
                "type": interaction.type,
                "date": interaction.date,
                "contact": names.get(interaction.contact_id, "Unknown"),
                "notes": notes,
            }
        )
    return activity


def _upcoming_birthdays(ctx: ToolContext) -> list[dict[str, Any]]:
    today = ctx.today
    upcoming = []
    for contact in ctx.data.contacts:
        if not contact.birthday:
            continue
        try:
            month, day = (int(part) for part in contact.birthday.split("-")[-2:])
            birthday = date(today.year, month, day)
            if birthday < today:
                birthday = date(today.year + 1, month, day)
        except ValueError:
            # Malformed or Feb 29 outside a leap year
            continue
        days_until = (birthday - today).days
        if days_until <= BIRTHDAY_WINDOW_DAYS:
            upcoming.append(
                {"name": contact.full_name, "birthday": contact.birthday, "daysUntil": days_until}
            )
    return sorted(upcoming, key=lambda b: b["daysUntil"])


def get_stats_executor(args: GetStatsArgs, ctx: ToolContext) -> dict[str, Any]:
    if args.metric == "overview":
        return _overview(ctx)
    if args.metric == "interactionsByType":
        return _interactions_by_type(ctx)
    if args.metric == "contactsByStatus":
        return _status_counts(ctx.data.contacts)
    if args.metric == "upcomingBirthdays":
        return {"upcoming": _upcoming_birthdays(ctx)}
    if args.metric == "overdueTasks":
        return {"tasks": _overdue_tasks(ctx)}
    if args.metric == "recentActivity":
        return {"recentInteractions": _recent_activity(ctx)}

    stats: dict[str, Any] = {**_overview(ctx), "interactionsByType": _interactions_by_type(ctx)}
    overdue = _overdue_tasks(ctx)
    if overdue:
        stats["overdueTasks"] = overdue
    recent = _recent_activity(ctx)
    if recent:
        stats["recentActivity"] = recent[:5]
    return stats
