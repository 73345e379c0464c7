"""CRM tools that create or update records.

Contact and task references are resolved against the ToolContext snapshot;
the writes themselves go through a CRMWriter supplied by the host
application and are mirrored into the snapshot, so later calls of the same
round see them. No delete tools are offered.
"""

from typing import Any, Protocol

from nexus_chat.tools.arguments import (
    AddContactArgs,
    AddInteractionArgs,
    AddTaskArgs,
    UpdateContactArgs,
    UpdateTaskArgs,
)
from nexus_chat.tools.crm_models import (
    CRMModel,
    Contact,
    Interaction,
    Task,
    find_contact,
    find_task,
)
from nexus_chat.tools.executor import ToolExecutionError
from nexus_chat.tools.types import ToolContext, ToolDefinition, parameters_schema


class CRMWriter(Protocol):
    """Persistence backend for CRM writes.

    Field dicts use the camelCase wire names. ``add_*`` methods return the id of
    the created record.
    """

    async def add_contact(self, user_id: str, fields: dict[str, Any]) -> str: ...

    async def update_contact(
        self, user_id: str, contact_id: str, updates: dict[str, Any]
    ) -> None: ...

    async def add_interaction(self, user_id: str, fields: dict[str, Any]) -> str: ...

    async def add_task(self, user_id: str, fields: dict[str, Any]) -> str: ...

    async def update_task(self, user_id: str, task_id: str, updates: dict[str, Any]) -> None: ...


def _resolve_contact_ids(contacts: list[Contact], names: list[str]) -> list[str]:
    ids = []
    for name in names:
        found = find_contact(contacts, contact_name=name)
        if found is not None:
            ids.append(found.id)
    return ids


def _merge_ids(existing: list[str], extra: list[str]) -> list[str]:
    return list(dict.fromkeys([*existing, *extra]))


def _mirror_write(
    records: list[Any], model: type[CRMModel], record_id: str, fields: dict[str, Any]
) -> None:
    """Apply a write to the snapshot: merge into an existing record or append a new one."""
    for i, record in enumerate(records):
        if record.id == record_id:
            records[i] = model.model_validate({**record.model_dump(by_alias=True), **fields})
            return
    records.append(model.model_validate({**fields, "id": record_id}))


add_contact_tool = ToolDefinition(
    name="addContact",
    description="Create a new contact in the CRM. Returns the created contact.",
    category="write",
    parameters=parameters_schema(AddContactArgs),
)

add_interaction_tool = ToolDefinition(
    name="addInteraction",
    description="Log a new interaction (meeting, call, email, etc.) with a contact",
    category="write",
    parameters=parameters_schema(AddInteractionArgs),
)

add_task_tool = ToolDefinition(
    name="addTask",
    description=(
        "Create a new task or reminder, optionally linked to a contact. Use this for both "
        "tasks AND reminders - they are the same thing in this system."
    ),
    category="write",
    parameters=parameters_schema(AddTaskArgs),
)

update_contact_tool = ToolDefinition(
    name="updateContact",
    description="Update an existing contact's information",
    category="write",
    parameters=parameters_schema(UpdateContactArgs),
)

update_task_tool = ToolDefinition(
    name="updateTask",
    description="Update a task (mark complete, change priority, reschedule, etc.)",
    category="write",
    parameters=parameters_schema(UpdateTaskArgs),
)


class CRMWriteTools:
    """Executors for the write tools, bound to one CRMWriter."""

    def __init__(self, writer: CRMWriter) -> None:
        self.writer = writer

    async def add_contact(self, args: AddContactArgs, ctx: ToolContext) -> dict[str, Any]:
        """Create a contact, link related contacts both ways and log a first interaction."""
        contacts = ctx.data.contacts
        today = ctx.today.isoformat()
        related_ids = _resolve_contact_ids(contacts, args.related_contact_names or [])

        fields: dict[str, Any] = {
            "firstName": args.first_name,
            "lastName": args.last_name,
            "email": args.email or "",
            "phone": args.phone or "",
            "company": args.company or "",
            "position": args.position or "",
            "tags": args.tags or [],
            "notes": args.notes or "",
            "lastContacted": today,
            "nextFollowUp": None,
            "avatar": "",
            "status": "active",
            "relatedContactIds": related_ids,
        }
        if args.birthday:
            fields["birthday"] = args.birthday

        contact_id = await self.writer.add_contact(ctx.user_id, fields)
        _mirror_write(contacts, Contact, contact_id, fields)

        for related_id in related_ids:
            related = find_contact(contacts, contact_id=related_id)
            if related is not None:
                linked = {
                    "relatedContactIds": _merge_ids(related.related_contact_ids, [contact_id])
                }
                await self.writer.update_contact(ctx.user_id, related_id, linked)
                _mirror_write(contacts, Contact, related_id, linked)

        first_note = args.notes or f"First contact with {args.first_name} {args.last_name}"
        first_interaction = {
            "contactId": contact_id,
            "type": "Other",
            "date": today,
            "notes": f"Initial contact added. {first_note}",
        }
        interaction_id = await self.writer.add_interaction(ctx.user_id, first_interaction)
        _mirror_write(ctx.data.interactions, Interaction, interaction_id, first_interaction)
        return {"success": True, "contactId": contact_id, "contact": {**fields, "id": contact_id}}

    async def add_interaction(self, args: AddInteractionArgs, ctx: ToolContext) -> dict[str, Any]:
        contact = find_contact(ctx.data.contacts, args.contact_id, args.contact_name)
        if contact is None:
            raise ToolExecutionError("Contact not found")

        interaction_date = args.date or ctx.today.isoformat()
        fields = {
            "contactId": contact.id,
            "type": args.type,
            "notes": args.notes,
            "date": interaction_date,
        }
        interaction_id = await self.writer.add_interaction(ctx.user_id, fields)
        _mirror_write(ctx.data.interactions, Interaction, interaction_id, fields)

        touched = {"lastContacted": interaction_date}
        await self.writer.update_contact(ctx.user_id, contact.id, touched)
        _mirror_write(ctx.data.contacts, Contact, contact.id, touched)
        return {"success": True, "interactionId": interaction_id}

    async def add_task(self, args: AddTaskArgs, ctx: ToolContext) -> dict[str, Any]:
        """Create a task. An unresolvable contact reference leaves the task unlinked."""
        fields: dict[str, Any] = {
            "title": args.title,
            "completed": False,
            "priority": args.priority,
            "frequency": args.frequency,
            "createdAt": ctx.today.isoformat(),
        }
        contact = find_contact(ctx.data.contacts, args.contact_id, args.contact_name)
        if contact is not None:
            fields["contactId"] = contact.id
        if args.description:
            fields["description"] = args.description
        if args.due_date:
            fields["dueDate"] = args.due_date
        if args.due_time:
            fields["dueTime"] = args.due_time

        task_id = await self.writer.add_task(ctx.user_id, fields)
        _mirror_write(ctx.data.tasks, Task, task_id, fields)
        return {"success": True, "taskId": task_id}

    async def update_contact(self, args: UpdateContactArgs, ctx: ToolContext) -> dict[str, Any]:
        contacts = ctx.data.contacts
        contact = find_contact(contacts, args.contact_id, args.contact_name)
        if contact is None:
            raise ToolExecutionError("Contact not found")

        updates = args.updates.model_dump(
            by_alias=True, exclude_none=True, exclude={"related_contact_names"}
        )
        if args.updates.related_contact_names:
            new_ids = _resolve_contact_ids(contacts, args.updates.related_contact_names)
            existing = contact.related_contact_ids
            updates["relatedContactIds"] = _merge_ids(existing, new_ids)
            for related_id in new_ids:
                if related_id in existing:
                    continue
                related = find_contact(contacts, contact_id=related_id)
                if related is not None:
                    linked = {
                        "relatedContactIds": _merge_ids(related.related_contact_ids, [contact.id])
                    }
                    await self.writer.update_contact(ctx.user_id, related_id, linked)
                    _mirror_write(contacts, Contact, related_id, linked)

        await self.writer.update_contact(ctx.user_id, contact.id, updates)
        _mirror_write(contacts, Contact, contact.id, updates)
        return {"success": True}

    async def update_task(self, args: UpdateTaskArgs, ctx: ToolContext) -> dict[str, Any]:
        task = find_task(ctx.data.tasks, args.task_id, args.task_title)
        if task is None:
            raise ToolExecutionError("Task not found")

        updates = args.updates.model_dump(by_alias=True, exclude_none=True)
        await self.writer.update_task(ctx.user_id, task.id, updates)
        _mirror_write(ctx.data.tasks, Task, task.id, updates)
        return {"success": True}
