from docspace_agent.agent.registry import ToolRegistry
from docspace_agent.agent.tools import register_builtin_tools
from docspace_agent.ingest.parser import ParserRegistry
from docspace_agent.obs.tracing import Timer, summarize_tool_calls
from docspace_agent.types import ToolCallRecord


def test_timer_measures_elapsed_time() -> None:
    with Timer() as timer:
        sum(range(1000))

    assert timer.elapsed_ms >= 0.0


def test_summary_counts_failures_and_latency() -> None:
    records = [
        ToolCallRecord(name="list_dir", args={}, latency_ms=1.25),
        ToolCallRecord(name="read_file", args={"file_path": "x"}, ok=False, latency_ms=2.0),
    ]

    summary = summarize_tool_calls(records)

    assert summary == {
        "count": 2,
        "failed": 1,
        "total_latency_ms": 3.2,
        "calls": ["list_dir", "read_file"],
    }


def test_registry_logs_tool_latency(tmp_path, caplog) -> None:
    registry = ToolRegistry()
    register_builtin_tools(registry, workspace_root=tmp_path, parsers=ParserRegistry())

    with caplog.at_level("INFO", logger="docspace_agent.agent.registry"):
        registry.execute("list_dir", {"target_directory": "."})

    assert any("Tool list_dir finished in" in record.getMessage() for record in caplog.records)
