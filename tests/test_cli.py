"""Tests for the click CLI."""

from click.testing import CliRunner

from tally.cli import main


def _run(db, *args):
    return CliRunner().invoke(main, ["--db", db, *args], catch_exceptions=False)


def test_init_db_user_and_reputation(tmp_path):
    db = f"sqlite:///{tmp_path / 'cli.db'}"

    assert _run(db, "init-db").exit_code == 0

    added = _run(db, "user", "add", "Carla", "--verified")
    assert added.exit_code == 0
    assert "@carla" in added.output

    user_id = added.output.split()[-1]
    shown = _run(db, "reputation", user_id)
    assert "25" in shown.output
    assert "newcomer" in shown.output


def test_duplicate_handle_exits_nonzero(tmp_path):
    db = f"sqlite:///{tmp_path / 'cli.db'}"
    _run(db, "init-db")
    _run(db, "user", "add", "dup")

    result = _run(db, "user", "add", "DUP")
    assert result.exit_code == 1
    assert "already taken" in result.output


def test_empty_queue_and_recompute(tmp_path):
    db = f"sqlite:///{tmp_path / 'cli.db'}"
    _run(db, "init-db")
    _run(db, "user", "add", "solo")

    assert "No reports" in _run(db, "queue").output
    recompute = _run(db, "recompute")
    assert recompute.exit_code == 0
    assert "1 recomputed" in recompute.output
