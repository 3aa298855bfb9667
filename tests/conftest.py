"""Shared fixtures: an engine on in-memory SQLite and a cast of users."""

from types import SimpleNamespace

import pytest

from tally.config import EngineConfig
from tally.engine import Tally
from tally.events import ALL_EVENTS, RecordingHandler


def make_engine(**overrides) -> Tally:
    config = EngineConfig(database_url=overrides.pop("database_url", "sqlite://"), **overrides)
    engine = Tally(config)
    engine.init_db()
    return engine


@pytest.fixture
def engine():
    eng = make_engine()
    yield eng
    eng.close()


@pytest.fixture
def events(engine):
    recorder = RecordingHandler()
    engine.bus.subscribe(ALL_EVENTS, recorder)
    return recorder


@pytest.fixture
def people(engine):
    """alice authors; bob, carol and dave vote and report; mod and mod2 moderate."""
    return SimpleNamespace(
        alice=engine.register_user("alice"),
        bob=engine.register_user("bob"),
        carol=engine.register_user("carol"),
        dave=engine.register_user("dave"),
        mod=engine.register_user("mod", is_moderator=True),
        mod2=engine.register_user("mod2", is_moderator=True),
    )


@pytest.fixture
def post(engine, people):
    result = engine.submit_content(people.alice.id, "First post on the board", "post", ["intro"])
    return engine.get_content(result.id, "post")
