"""Tool execution layer for the CRM assistant.

This module provides:
- Tool registry for tool discovery and registration
- Tool execution layer with argument validation and telemetry
- The CRM tool catalog (query tools and write tools)
"""

from nexus_chat.tools import arguments
from nexus_chat.tools.crm_models import CRMData, Contact, Interaction, Task
from nexus_chat.tools.crm_query import (
    get_contact_details_executor,
    get_contact_details_tool,
    get_stats_executor,
    get_stats_tool,
    search_contacts_executor,
    search_contacts_tool,
    search_interactions_executor,
    search_interactions_tool,
    search_tasks_executor,
    search_tasks_tool,
)
from nexus_chat.tools.crm_write import (
    CRMWriter,
    CRMWriteTools,
    add_contact_tool,
    add_interaction_tool,
    add_task_tool,
    update_contact_tool,
    update_task_tool,
)
from nexus_chat.tools.executor import (
    InvalidToolArgumentsError,
    ToolExecutionError,
    ToolExecutionLayer,
    UnknownToolError,
)
from nexus_chat.tools.registry import ToolRegistry
from nexus_chat.tools.types import ToolContext, ToolDefinition, ToolResult

__all__ = [
    # Core exports
    "ToolRegistry",
    "ToolExecutionLayer",
    "ToolExecutionError",
    "UnknownToolError",
    "InvalidToolArgumentsError",
    "ToolDefinition",
    "ToolContext",
    "ToolResult",
    # CRM model
    "CRMData",
    "Contact",
    "Interaction",
    "Task",
    "CRMWriter",
    # Tool registration function
    "register_crm_tools",
]


def register_crm_tools(registry: ToolRegistry, writer: CRMWriter | None = None) -> None:
    """Register the CRM tool catalog with the registry.

    Query tools are always registered. Write tools (addContact, addInteraction,
    addTask, updateContact, updateTask) are registered only when a writer is
    supplied.

    Args:
        registry: Tool registry to register tools with.
        writer: Backend that performs CRM writes.
    """
    registry.register(search_contacts_tool, arguments.SearchContactsArgs, search_contacts_executor)
    registry.register(
        get_contact_details_tool, arguments.GetContactDetailsArgs, get_contact_details_executor
    )
    registry.register(
        search_interactions_tool, arguments.SearchInteractionsArgs, search_interactions_executor
    )
    registry.register(search_tasks_tool, arguments.SearchTasksArgs, search_tasks_executor)
    registry.register(get_stats_tool, arguments.GetStatsArgs, get_stats_executor)

    if writer is None:
        return

    write_tools = CRMWriteTools(writer)
    registry.register(add_contact_tool, arguments.AddContactArgs, write_tools.add_contact)
    registry.register(
        add_interaction_tool, arguments.AddInteractionArgs, write_tools.add_interaction
    )
    registry.register(add_task_tool, arguments.AddTaskArgs, write_tools.add_task)
    registry.register(update_contact_tool, arguments.UpdateContactArgs, write_tools.update_contact)
    registry.register(update_task_tool, arguments.UpdateTaskArgs, write_tools.update_task)
