import json
from pathlib import Path

from click.testing import CliRunner

from patchwise.cli import main


def _setup(tmp_path: Path, edits) -> Path:
    (tmp_path / "f.txt").write_text("A\nB\nC\n", encoding="utf-8")
    edits_file = tmp_path / "edits.json"
    edits_file.write_text(json.dumps(edits), encoding="utf-8")
    return edits_file


def test_apply_yes_writes_file(tmp_path: Path):
    edits_file = _setup(tmp_path, [{"old_string": "B", "new_string": "B2"}])
    runner = CliRunner()
    result = runner.invoke(
        main, ["apply", "f.txt", str(edits_file), "--yes", "--root", str(tmp_path)]
    )
    assert result.exit_code == 0, result.output
    assert "Applied 1 edit(s)" in result.output
    assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "A\nB2\nC\n"


def test_apply_interactive_accepts_hunk(tmp_path: Path):
    edits_file = _setup(tmp_path, {"edits": [{"old_string": "C", "new_string": "C2"}]})
    runner = CliRunner()
    result = runner.invoke(
        main, ["apply", "f.txt", str(edits_file), "--root", str(tmp_path)], input="ct\n"
    )
    assert result.exit_code == 0, result.output
    assert "Inline diff for 1 change(s)" in result.output
    assert "Review of f.txt written." in result.output
    assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "A\nB\nC2\n"


def test_apply_interactive_revert_keeps_file(tmp_path: Path):
    edits_file = _setup(tmp_path, [{"old_string": "C", "new_string": "C2"}])
    runner = CliRunner()
    result = runner.invoke(
        main, ["apply", "f.txt", str(edits_file), "--root", str(tmp_path)], input="co\n"
    )
    assert result.exit_code == 0, result.output
    assert "Review of f.txt written." in result.output
    assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "A\nB\nC\n"


def test_apply_interactive_eof_closes_review(tmp_path: Path):
    edits_file = _setup(tmp_path, [{"old_string": "C", "new_string": "C2"}])
    runner = CliRunner()
    result = runner.invoke(main, ["apply", "f.txt", str(edits_file), "--root", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Review of f.txt closed." in result.output
    assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "A\nB\nC\n"


def test_apply_search_replace_format(tmp_path: Path):
    (tmp_path / "f.txt").write_text("A\nB\n", encoding="utf-8")
    blocks = tmp_path / "edits.md"
    blocks.write_text(
        "```text\nf.txt\n<<<<<<< SEARCH\nA\n=======\nZ\n>>>>>>> REPLACE\n```\n",
        encoding="utf-8",
    )
    runner = CliRunner()
    result = runner.invoke(
        main,
        ["apply", "f.txt", str(blocks), "--yes", "--format", "search_replace", "--root", str(tmp_path)],
    )
    assert result.exit_code == 0, result.output
    assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "Z\nB\n"


def test_apply_rejects_invalid_json(tmp_path: Path):
    (tmp_path / "f.txt").write_text("A\n", encoding="utf-8")
    bad = tmp_path / "edits.json"
    bad.write_text("{not json", encoding="utf-8")
    runner = CliRunner()
    result = runner.invoke(main, ["apply", "f.txt", str(bad), "--yes", "--root", str(tmp_path)])
    assert result.exit_code != 0
    assert "Invalid JSON" in result.output


def test_apply_show_log_prints_captured_records(tmp_path: Path):
    edits_file = _setup(tmp_path, [{"old_string": "B", "new_string": "B2"}])
    runner = CliRunner()
    result = runner.invoke(
        main,
        ["apply", "f.txt", str(edits_file), "--yes", "--show-log", "--root", str(tmp_path)],
    )
    assert result.exit_code == 0, result.output
    assert "edit applied" in result.output
