"""Tests for ToolRegistry and the CRM tool catalog."""

from unittest.mock import MagicMock

import pytest
from pydantic import BaseModel

from nexus_chat.tools import ToolDefinition, ToolRegistry, register_crm_tools
from nexus_chat.tools.types import parameters_schema


class _EchoArgs(BaseModel):
    text: str


def _definition(name: str, category: str = "query") -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=f"{name} tool",
        category=category,
        parameters=parameters_schema(_EchoArgs),
    )


class TestToolRegistry:
    """Test registration, lookup and LLM formatting."""

    def test_register_and_get(self) -> None:
        registry = ToolRegistry()
        executor = MagicMock()
        registry.register(_definition("echo"), _EchoArgs, executor)

        tool_def, args_model, registered_executor = registry.get_tool("echo")

        assert tool_def.name == "echo"
        assert args_model is _EchoArgs
        assert registered_executor is executor
        assert registry.get_tool("missing") is None

    def test_duplicate_name_raises(self) -> None:
        registry = ToolRegistry()
        registry.register(_definition("echo"), _EchoArgs, MagicMock())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_definition("echo"), _EchoArgs, MagicMock())

    def test_list_tools_by_category(self) -> None:
        registry = ToolRegistry()
        registry.register(_definition("read"), _EchoArgs, MagicMock())
        registry.register(_definition("write", category="write"), _EchoArgs, MagicMock())

        assert [t.name for t in registry.list_tools()] == ["read", "write"]
        assert [t.name for t in registry.list_tools(category="write")] == ["write"]
        assert registry.list_tool_names() == ["read", "write"]

    def test_openai_format(self) -> None:
        registry = ToolRegistry()
        registry.register(_definition("echo"), _EchoArgs, MagicMock())

        (entry,) = registry.get_tool_definitions_for_llm()

        assert entry == {
            "type": "function",
            "function": {
                "name": "echo",
                "description": "echo tool",
                "parameters": {
                    "type": "object",
                    "properties": {"text": {"type": "string"}},
                    "required": ["text"],
                },
            },
        }


class TestCRMCatalog:
    """Test the CRM tool catalog registration."""

    def test_query_tools_only_without_writer(self) -> None:
        registry = ToolRegistry()
        register_crm_tools(registry)

        assert registry.list_tool_names() == [
            "searchContacts",
            "getContactDetails",
            "searchInteractions",
            "searchTasks",
            "getStats",
        ]
        assert registry.list_tools(category="write") == []

    def test_write_tools_with_writer(self) -> None:
        registry = ToolRegistry()
        register_crm_tools(registry, writer=MagicMock())

        assert [t.name for t in registry.list_tools(category="write")] == [
            "addContact",
            "addInteraction",
            "addTask",
            "updateContact",
            "updateTask",
        ]

    def test_schemas_use_camel_case_names(self) -> None:
        registry = ToolRegistry()
        register_crm_tools(registry, writer=MagicMock())
        schemas = {
            entry["function"]["name"]: entry["function"]["parameters"]
            for entry in registry.get_tool_definitions_for_llm()
        }

        assert set(schemas["getContactDetails"]["properties"]) == {"contactId", "contactName"}
        assert schemas["getStats"]["required"] == ["metric"]
        assert "title" in schemas["addTask"]["properties"]
        assert set(schemas["addContact"]["required"]) == {"firstName", "lastName"}
        assert "title" not in schemas["searchContacts"]
