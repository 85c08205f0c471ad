"""Tests for the promptgate CLI."""

import tempfile
from pathlib import Path

from click.testing import CliRunner

from promptgate.cli import main
from promptgate.restrictions.store import RestrictionStore

ENV = {"PROMPTGATE_CONFIG": "/nonexistent/promptgate.yaml", "COLUMNS": "200"}


def _invoke(tmpdir, *args):
    runner = CliRunner()
    return runner.invoke(main, ["--data-dir", tmpdir, *args], env=ENV)


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_audit_admits_and_blocks():
    with tempfile.TemporaryDirectory() as tmpdir:
        ok = _invoke(tmpdir, "audit", "how to pick a lock", "--user", "u1")
        assert ok.exit_code == 0
        assert "Admitted" in ok.output

        blocked = _invoke(tmpdir, "audit", "snuff film", "--user", "u1")
        assert blocked.exit_code == 1
        assert "Blocked" in blocked.output

        count = _invoke(tmpdir, "violations", "count", "u1")
        assert count.exit_code == 0
        assert "1 violation" in count.output


def test_debug_shows_checks():
    with tempfile.TemporaryDirectory() as tmpdir:
        result = _invoke(tmpdir, "debug", "a portrait of emma watson")
        assert result.exit_code == 0
        assert "minor_age" in result.output
        assert "Would block" in result.output


def test_violations_reset():
    with tempfile.TemporaryDirectory() as tmpdir:
        _invoke(tmpdir, "audit", "snuff film", "--user", "u1")
        result = _invoke(tmpdir, "violations", "reset", "u1")
        assert result.exit_code == 0
        assert "0 violation" in _invoke(tmpdir, "violations", "count", "u1").output


def test_restriction_review_flow():
    with tempfile.TemporaryDirectory() as tmpdir:
        for _ in range(9):
            _invoke(tmpdir, "audit", "snuff film", "--user", "u1")

        listing = _invoke(tmpdir, "restrictions", "list", "--status", "Pending")
        assert listing.exit_code == 0
        assert "u1" in listing.output

        items, total = RestrictionStore(Path(tmpdir) / "restrictions").query()
        assert total == 1
        restriction_id = items[0].id

        shown = _invoke(tmpdir, "restrictions", "show", restriction_id)
        assert shown.exit_code == 0
        assert "snuff film" in shown.output

        resolved = _invoke(
            tmpdir, "restrictions", "resolve", restriction_id,
            "--decision", "Overturned", "--moderator", "mod-1",
        )
        assert resolved.exit_code == 0
        assert "Overturned" in resolved.output

        again = _invoke(
            tmpdir, "restrictions", "resolve", restriction_id,
            "--decision", "Upheld", "--moderator", "mod-1",
        )
        assert again.exit_code == 1


def test_restrictions_show_unknown():
    with tempfile.TemporaryDirectory() as tmpdir:
        result = _invoke(tmpdir, "restrictions", "show", "missing")
        assert result.exit_code == 1


def test_allowlist_commands():
    with tempfile.TemporaryDirectory() as tmpdir:
        added = _invoke(tmpdir, "allowlist", "add", "emma watson", "poi", "--moderator", "mod-1")
        assert added.exit_code == 0

        listing = _invoke(tmpdir, "allowlist", "list")
        assert "emma watson" in listing.output

        ok = _invoke(tmpdir, "audit", "a portrait of emma watson", "--user", "u1")
        assert ok.exit_code == 0

        removed = _invoke(tmpdir, "allowlist", "remove", "emma watson", "poi", "--moderator", "mod-1")
        assert removed.exit_code == 0
        assert "Allowlist is empty" in _invoke(tmpdir, "allowlist", "list").output
