import pytest
from pydantic import ValidationError

from docspace_agent.agent.registry import (
    InsertTextCall,
    ListDirInput,
    ToolRegistry,
    ToolSpec,
    parse_invocation,
)
from docspace_agent.agent.tools import register_builtin_tools
from docspace_agent.errors import ToolExecutionError
from docspace_agent.ingest.parser import ParserRegistry
from docspace_agent.types import ToolOutput


def _list_spec() -> ToolSpec:
    def _handler(data: ListDirInput) -> ToolOutput:
        return ToolOutput(content=f"{data.target_directory}:{data.recursive}")

    return ToolSpec(
        name="list_dir",
        description="list workspace",
        args_schema=ListDirInput,
        handler=_handler,
    )


def test_invocations_are_a_closed_tagged_union() -> None:
    call = parse_invocation("insert_text", {"filename": "a.txt", "text": "x", "line": 2})

    assert isinstance(call, InsertTextCall)
    assert call.args.column == 1
    with pytest.raises(ValidationError):
        parse_invocation("delete_everything", {})
    with pytest.raises(ValidationError):
        parse_invocation("insert_text", {"filename": "a.txt", "text": "x", "line": "two"})


def test_tool_registry_validation() -> None:
    registry = ToolRegistry()
    registry.register(_list_spec())

    assert registry.execute("list_dir", {"recursive": True}).content == ".:True"
    with pytest.raises(ValidationError):
        registry.execute("list_dir", {"recursive": "sometimes"})


def test_known_but_unregistered_tool_fails() -> None:
    registry = ToolRegistry()
    registry.register(_list_spec())

    with pytest.raises(ToolExecutionError):
        registry.execute("read_file", {"file_path": "a.txt"})


def test_duplicate_tool_registration_rejected() -> None:
    registry = ToolRegistry()
    registry.register(_list_spec())

    with pytest.raises(ValueError):
        registry.register(_list_spec())


def test_builtin_tools_export_to_langchain(tmp_path) -> None:
    registry = ToolRegistry()
    register_builtin_tools(registry, workspace_root=tmp_path, parsers=ParserRegistry())

    tools = registry.as_langchain_tools()

    assert sorted(tool.name for tool in tools) == sorted(
        [
            "create_latex_file",
            "extract_document",
            "grep_files",
            "insert_text",
            "list_dir",
            "read_file",
        ]
    )
    listing = next(tool for tool in tools if tool.name == "list_dir")
    assert listing.invoke({"target_directory": "."}) == "(empty directory)"
