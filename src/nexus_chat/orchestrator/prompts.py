"""System prompt for the CRM assistant.

The prompt is rebuilt for every model round from the current CRM snapshot so
the counts the model sees match the data its tools read.
"""

from collections import Counter
from datetime import date

from nexus_chat.tools.crm_models import CRMData, is_overdue

# ============================================================================
# System Prompt Template
# ============================================================================

ASSISTANT_SYSTEM_PROMPT = """You are an AI assistant for Nexus, a personal CRM (Customer Relationship Management) application. Your role is to help the user manage their professional and personal relationships effectively.

## Current Date
- Today's date in YYYY-MM-DD format: {today}

## Current CRM State
{crm_state}

## Your Capabilities

### QUERY (Read-only operations)
- Search contacts by name, company, email, tags, or status
- Get detailed contact information with their interaction history and tasks
- Search interactions by contact, type, date range, or content
- Search tasks by status, priority, contact, or due date
- Get CRM statistics and analytics

### CREATE (Add new data)
- Add new contacts to the CRM
- Log interactions (meetings, calls, emails, coffee chats, events)
- Create tasks with optional contact links, due dates, and priorities

### UPDATE (Modify existing data)
- Update contact information (name, email, phone, company, tags, status, notes)
- Update tasks (mark complete, change priority, reschedule)

## Restrictions
- You CANNOT delete any data (contacts, interactions, or tasks)
- Deletion must be done through the UI for safety
- If asked to delete something, politely explain this restriction

## Response Guidelines
1. Be concise and helpful
2. When showing contacts, include their company and status
3. When showing tasks, indicate completion status and priority
4. Proactively suggest relevant follow-up actions
5. If a query returns no results, suggest alternative searches
6. When creating records, confirm the details before executing
7. Use the user's natural language - don't be overly formal

## Important Notes
- Contact names may be partial - try to match flexibly
- Dates should be in YYYY-MM-DD format when creating/updating
- If ambiguous, ask for clarification rather than guessing
- Keep track of context across the conversation"""

TOP_TAG_COUNT = 5
RECENT_INTERACTION_WINDOW = 20


def _crm_state_lines(data: CRMData, today: date) -> list[str]:
    contacts, interactions, tasks = data.contacts, data.interactions, data.tasks
    active = sum(1 for c in contacts if c.status == "active")
    drifting = sum(1 for c in contacts if c.status == "drifting")
    pending = sum(1 for t in tasks if not t.completed)
    overdue = sum(1 for t in tasks if is_overdue(t, today))

    lines = [
        f"- Total Contacts: {len(contacts)} ({active} active, {drifting} drifting)",
        f"- Total Interactions: {len(interactions)}",
        f"- Pending Tasks: {pending}" + (f" ({overdue} overdue!)" if overdue else ""),
    ]

    tag_counts = Counter(tag for c in contacts for tag in c.tags)
    if tag_counts:
        top_tags = [tag for tag, _ in tag_counts.most_common(TOP_TAG_COUNT)]
        lines.append(f"- Common Tags: {', '.join(top_tags)}")

    recent_types = list(
        dict.fromkeys(i.type for i in interactions[:RECENT_INTERACTION_WINDOW])
    )
    if recent_types:
        lines.append(f"- Recent Interaction Types: {', '.join(recent_types)}")
    return lines


def build_system_prompt(data: CRMData, today: date | None = None) -> str:
    """Build the assistant system prompt for the given CRM snapshot.

    Args:
        data: The user's CRM data.
        today: Reference date. Defaults to the current date.

    Returns:
        The formatted system prompt.
    """
    today = today or date.today()
    return ASSISTANT_SYSTEM_PROMPT.format(
        today=today.isoformat(),
        crm_state="\n".join(_crm_state_lines(data, today)),
    )
