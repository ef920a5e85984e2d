from typing import List, Optional, Tuple

import pytest

from knock.translate import CacheStore, ShellContext


class RecordingProvider:
    """Provider stand-in that returns canned text and records every call."""

    def __init__(self, reply: str = "ls -la", error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[Tuple[str, str, int, float]] = []
        self.closed = False

    async def send(self, instructions, prompt, max_tokens, temperature=0.2):
        self.calls.append((instructions, prompt, max_tokens, temperature))
        if self.error is not None:
            raise self.error
        return self.reply

    async def aclose(self):
        self.closed = True


@pytest.fixture
def make_provider():
    return RecordingProvider


@pytest.fixture
def shell_context():
    return ShellContext(os="macos", shell="zsh", cwd="/Users/dev/project")


@pytest.fixture
def cache(tmp_path):
    store = CacheStore(tmp_path / "cache.sqlite3")
    yield store
    store.close()
