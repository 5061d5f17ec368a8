"""Tool registry built on Pydantic v2 models.

Tool calls form a closed, tagged union (`ToolInvocation`): a call is parsed
into exactly one of the known variants before anything runs, so an unknown
tool name or a malformed argument shape is a validation error, never a
dispatch branch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Annotated, Any, Literal, Union, get_args

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from docspace_agent.errors import ToolExecutionError
from docspace_agent.obs.tracing import Timer
from docspace_agent.types import ToolOutput

logger = logging.getLogger(__name__)

ToolName = Literal[
    "read_file",
    "extract_document",
    "list_dir",
    "insert_text",
    "grep_files",
    "create_latex_file",
]
TOOL_NAMES: frozenset[str] = frozenset(get_args(ToolName))


class ReadFileInput(BaseModel):
    file_path: str = Field(min_length=1, description="Path relative to the workspace root.")


class ExtractDocumentInput(BaseModel):
    file_path: str = Field(min_length=1, description="PDF, DOCX or TXT file in the workspace.")


class ListDirInput(BaseModel):
    target_directory: str = Field(default=".", description='Relative directory; "." is the root.')
    recursive: bool = False


class InsertTextInput(BaseModel):
    filename: str = Field(min_length=1, description="File name in the workspace root.")
    text: str
    line: int = Field(description="1-based line; line count + 1 appends a new last line.")
    column: int = Field(default=1, description="1-based column; 1 inserts a whole new line.")


class GrepFilesInput(BaseModel):
    pattern: str = Field(min_length=1, description="Regular expression to search for.")
    search_path: str = "."
    include: str | None = Field(default=None, description='Optional glob such as "*.md".')
    limit: int = Field(default=100, ge=1, le=1000)


class CreateLatexFileInput(BaseModel):
    filename: str = Field(min_length=1)
    topic: str = Field(min_length=1)
    title: str | None = None
    author: str | None = None


class _Call(BaseModel):
    model_config = ConfigDict(frozen=True)


class ReadFileCall(_Call):
    name: Literal["read_file"]
    args: ReadFileInput


class ExtractDocumentCall(_Call):
    name: Literal["extract_document"]
    args: ExtractDocumentInput


class ListDirCall(_Call):
    name: Literal["list_dir"]
    args: ListDirInput


class InsertTextCall(_Call):
    name: Literal["insert_text"]
    args: InsertTextInput


class GrepFilesCall(_Call):
    name: Literal["grep_files"]
    args: GrepFilesInput


class CreateLatexFileCall(_Call):
    name: Literal["create_latex_file"]
    args: CreateLatexFileInput


ToolInvocation = Annotated[
    Union[
        ReadFileCall,
        ExtractDocumentCall,
        ListDirCall,
        InsertTextCall,
        GrepFilesCall,
        CreateLatexFileCall,
    ],
    Field(discriminator="name"),
]
_INVOCATION_ADAPTER: TypeAdapter[Any] = TypeAdapter(ToolInvocation)


def parse_invocation(name: str, args: dict[str, Any] | None) -> ToolInvocation:
    """Validate a raw `(name, args)` pair into a typed tool invocation.

    Raises:
        pydantic.ValidationError: unknown tool name or bad argument shape.
    """
    return _INVOCATION_ADAPTER.validate_python({"name": name, "args": args or {}})


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and export."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: ToolName
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[Any], ToolOutput]
    tags: list[str] = Field(default_factory=list)


class ToolRegistry:
    """Holds the enabled subset of the closed tool set, keyed by name."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def names(self) -> list[str]:
        return list(self._tools)

    def execute(self, name: str, payload: dict[str, Any] | None = None) -> ToolOutput:
        """Parse and run one tool call.

        Validation errors and the handlers' own errors propagate to the caller;
        the agent loop turns them into tool results for the model.
        """
        return self.run(parse_invocation(name, payload))

    def run(self, invocation: ToolInvocation) -> ToolOutput:
        spec = self._tools.get(invocation.name)
        if spec is None:
            raise ToolExecutionError(f"Tool is not enabled: {invocation.name}")
        with Timer() as timer:
            output = spec.handler(invocation.args)
        logger.info("Tool %s finished in %.1f ms", spec.name, timer.elapsed_ms)
        return output

    def as_langchain_tools(self) -> list[StructuredTool]:
        """Expose the registered tools for `bind_tools`.

        The schemas advertise argument shapes to the model; calling one of
        these objects still routes through `execute`, so validation happens
        in one place.
        """
        return [
            StructuredTool.from_function(
                func=self._dispatcher(spec.name),
                name=spec.name,
                description=spec.description,
                args_schema=spec.args_schema,
            )
            for spec in self._tools.values()
        ]

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def _dispatcher(self, name: str) -> Callable[..., str]:
        def _dispatch(**arguments: Any) -> str:
            return self.execute(name, arguments).content

        return _dispatch
