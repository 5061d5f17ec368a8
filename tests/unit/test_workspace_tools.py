import pytest

from docspace_agent.agent.tools import (
    create_latex_file,
    extract_document,
    grep_files,
    insert_text,
    list_dir,
    read_file,
)
from docspace_agent.errors import (
    AccessDeniedError,
    InvalidArgumentError,
    NotFoundError,
    ToolExecutionError,
    UnsupportedTypeError,
)
from docspace_agent.ingest.parser import ParserRegistry


@pytest.fixture()
def workspace(tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    (root / "notes.txt").write_text("one\ntwo\nthree\nfour", encoding="utf-8")
    return root


def test_insert_appends_after_last_line(workspace) -> None:
    message = insert_text(workspace, "notes.txt", "X", line=5)

    assert message == "Successfully inserted text into notes.txt at line 5, column 1."
    assert (workspace / "notes.txt").read_text(encoding="utf-8").split("\n")[-1] == "X"


def test_insert_whole_line_before_line(workspace) -> None:
    insert_text(workspace, "notes.txt", "X", line=3, column=1)

    assert (workspace / "notes.txt").read_text(encoding="utf-8").split("\n") == [
        "one",
        "two",
        "X",
        "three",
        "four",
    ]


def test_insert_splices_at_column(workspace) -> None:
    (workspace / "notes.txt").write_text("a\nb\nthree lines\n", encoding="utf-8")

    insert_text(workspace, "notes.txt", "X", line=3, column=5)

    assert (workspace / "notes.txt").read_text(encoding="utf-8").split("\n")[2] == "threXe lines"


def test_insert_errors(workspace) -> None:
    with pytest.raises(NotFoundError):
        insert_text(workspace, "missing.txt", "X", line=1)
    with pytest.raises(InvalidArgumentError):
        insert_text(workspace, "notes.txt", "X", line=0)
    with pytest.raises(InvalidArgumentError):
        insert_text(workspace, "notes.txt", "X", line=9)
    with pytest.raises(InvalidArgumentError):
        insert_text(workspace, "notes.txt", "X", line=1, column=0)


def test_paths_cannot_escape_workspace(workspace) -> None:
    (workspace.parent / "secret.txt").write_text("nope", encoding="utf-8")

    with pytest.raises(AccessDeniedError):
        read_file(workspace, "../secret.txt")
    with pytest.raises(AccessDeniedError):
        list_dir(workspace, "..")


def test_insert_uses_base_name_only(workspace) -> None:
    insert_text(workspace, "../uploads/notes.txt", "X", line=1)

    assert (workspace / "notes.txt").read_text(encoding="utf-8").startswith("X\none")


def test_list_dir_marks_directories(workspace) -> None:
    (workspace / "drafts").mkdir()
    (workspace / "drafts" / "plan.md").write_text("plan", encoding="utf-8")
    (workspace / ".hidden").write_text("x", encoding="utf-8")

    assert list_dir(workspace) == ["drafts/", "notes.txt"]
    assert list_dir(workspace, recursive=True) == ["drafts/", "drafts/plan.md", "notes.txt"]


def test_extract_document_rejects_unsupported_types(workspace) -> None:
    (workspace / "image.png").write_bytes(b"\x89PNG")
    parsers = ParserRegistry()

    with pytest.raises(UnsupportedTypeError):
        extract_document(workspace, "image.png", parsers)

    text, segments = extract_document(workspace, "notes.txt", parsers)
    assert text == "one\ntwo\nthree\nfour"
    assert segments == 1


def test_grep_and_latex_creation(workspace) -> None:
    path = create_latex_file(workspace, "intro", "graph theory")

    assert path.name == "intro.tex"
    assert "An Overview" in path.read_text(encoding="utf-8")
    assert grep_files(workspace, r"graph theory") == ["intro.tex"]
    assert grep_files(workspace, r"three", include="*.txt") == ["notes.txt"]
    with pytest.raises(ToolExecutionError):
        create_latex_file(workspace, "intro.tex", "again")
    with pytest.raises(InvalidArgumentError):
        grep_files(workspace, "(")
