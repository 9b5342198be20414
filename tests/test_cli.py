"""Tests for the command line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from health_agent import cli
from health_agent.cli import build_parser, clean_markdown_titles
from health_agent.config import Settings, SourceSettings


def test_clean_markdown_titles():
    text = "## Summary\nYour steps are up.\n  ### Next steps\nKeep #1 habit."

    assert clean_markdown_titles(text) == (
        "Summary\nYour steps are up.\nNext steps\nKeep #1 habit."
    )


def test_parser_ask():
    args = build_parser().parse_args(["--source", "export", "--export-path", "e.json", "ask", "Hi"])

    assert args.command == "ask"
    assert args.question == "Hi"
    assert args.source == "export"
    assert args.export_path == "e.json"


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


async def test_summary_prints_document(tmp_path, capsys, sample_export_payload):
    path = tmp_path / "export.json"
    path.write_text(json.dumps(sample_export_payload), encoding="utf-8")
    settings = Settings(
        source=SourceSettings(_env_file=None, kind="export", export_path=str(path))
    )

    code = await cli._summary(settings)

    assert code == 0
    document = json.loads(capsys.readouterr().out)
    assert "weights" in document
    assert "dailyCaloriesEstimate" in document


async def test_ask_prints_clean_answer(tmp_path, capsys, sample_export_payload):
    path = tmp_path / "export.json"
    path.write_text(json.dumps(sample_export_payload), encoding="utf-8")
    settings = Settings(
        source=SourceSettings(_env_file=None, kind="export", export_path=str(path))
    )

    with patch.object(
        cli.CompletionClient, "complete", AsyncMock(return_value="# Weight\nStable.")
    ):
        code = await cli._ask(settings, "How is my weight?")

    assert code == 0
    assert capsys.readouterr().out == "Weight\nStable.\n"


async def test_ask_denied(tmp_path, capsys):
    settings = Settings(
        source=SourceSettings(
            _env_file=None, kind="export", export_path=str(tmp_path / "missing.json")
        )
    )

    code = await cli._ask(settings, "How is my weight?")

    assert code == 1
    assert "denied" in capsys.readouterr().err
