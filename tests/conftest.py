"""Shared fixtures for the jxabridge test suite."""

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from jxabridge import JXASession
from jxabridge import session

FAKE_REPL_PATH: Path = Path(__file__).resolve().parent / "fixtures" / "fake_jxa_repl.py"


@pytest.fixture
def fake_command() -> list[str]:
    """Return the command line that starts the scripted fake interpreter.

    :returns: Command arguments.
    """
    return [sys.executable, str(FAKE_REPL_PATH)]


@pytest.fixture
def fake_session(fake_command: list[str]) -> Iterator[JXASession]:
    """Start a session against the fake interpreter.

    :param fake_command: Fake interpreter command line.
    :yields: Started session, disposed afterwards.
    """
    active: JXASession = session(command=fake_command)
    try:
        yield active
    finally:
        active.dispose()
