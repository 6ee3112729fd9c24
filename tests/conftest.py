"""Shared fixtures for guix-repl tests."""

from collections.abc import Callable
from collections.abc import Iterator

import pytest

from guix_repl import ConnectionManager
from tests.support import RecordingNotifier
from tests.support import fake_config


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Provide a recording notifier.

    :returns: Fresh notifier.
    """
    return RecordingNotifier()


@pytest.fixture
def make_manager(notifier: RecordingNotifier) -> Iterator[Callable[..., ConnectionManager]]:
    """Provide a factory for managers running the fake evaluator.

    :param notifier: Recording notifier shared by created managers.
    :yields: Factory taking ``server_mode``, extra fake flags and config options.
    """
    created: list[ConnectionManager] = []

    def factory(server_mode: bool = True, *extra_args: str, **options: object) -> ConnectionManager:
        manager = ConnectionManager(
            fake_config(server_mode, *extra_args, **options),
            notifier=notifier,
            close_at_exit=False,
        )
        created.append(manager)
        return manager

    yield factory
    for manager in created:
        manager.close()
