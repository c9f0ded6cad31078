"""CLI tests for compile, search and expand-spec commands."""

from __future__ import annotations

from typer.testing import CliRunner

import solr_bridge.main as main_module
from solr_bridge.executor import ResultTable


def test_compile_command_prints_compiled_query(monkeypatch) -> None:
    monkeypatch.delenv("SOLR_BRIDGE_ECHO_PARAMS", raising=False)
    runner = CliRunner()

    result = runner.invoke(
        main_module.app,
        ["compile", "--filters", "year>2020", "--query", "title:annual", "--limit", "3"],
    )

    assert result.exit_code == 0
    assert "year:[2021 TO *]" in result.stdout
    assert "title:annual" in result.stdout


def test_compile_command_as_string() -> None:
    runner = CliRunner()

    result = runner.invoke(
        main_module.app,
        ["--verbose", "compile", "-f", "kind=report or kind=memo", "--as-string"],
    )

    assert result.exit_code == 0
    assert "kind:report OR kind:memo" in result.stdout


def test_compile_command_reports_parse_errors() -> None:
    runner = CliRunner()

    result = runner.invoke(main_module.app, ["compile", "-f", "title>abc"])

    assert result.exit_code == 1
    assert "Error" in result.stdout


def test_expand_spec_command() -> None:
    runner = CliRunner()

    result = runner.invoke(main_module.app, ["expand-spec", "Both(2,7)"])

    assert result.exit_code == 0
    assert "mode: both" in result.stdout
    assert "offset: 2" in result.stdout
    assert "limit: 7" in result.stdout


def test_search_command_prints_rows(monkeypatch) -> None:
    called: dict[str, object] = {}

    class FakeExecutor:
        def __init__(self, settings) -> None:
            called["settings"] = settings
            self.pages = [
                [{"id": "C1", "parent_id": "P"}],
                [{"id": "P", "is_parent": True}],
            ]

        def fetch(self, query, offset=None, limit=None) -> ResultTable:
            return ResultTable.from_rows(self.pages.pop(0))

        def close(self) -> None:
            called["closed"] = True

    monkeypatch.setattr(main_module, "SolrHttpExecutor", FakeExecutor)
    runner = CliRunner()

    result = runner.invoke(
        main_module.app,
        ["search", "-f", "kind=report", "--expand", "Parent", "--collection", "archive"],
    )

    assert result.exit_code == 0
    assert "C1" in result.stdout
    assert "is_expanded" in result.stdout
    assert called["settings"].collection == "archive"
    assert called["closed"] is True


def test_search_command_reports_execution_errors(monkeypatch) -> None:
    class FailingExecutor:
        def __init__(self, settings) -> None:
            pass

        def fetch(self, query, offset=None, limit=None) -> ResultTable:
            raise OSError("connection refused")

        def close(self) -> None:
            pass

    monkeypatch.setattr(main_module, "SolrHttpExecutor", FailingExecutor)
    runner = CliRunner()

    result = runner.invoke(main_module.app, ["search", "-f", "kind=report"])

    assert result.exit_code == 1
    assert "connection refused" in result.stdout
