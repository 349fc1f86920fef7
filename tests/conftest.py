import shutil
import tempfile
from pathlib import Path

import pytest

from askai.config_loader import load_config
from askai.errors import UnknownProvider
from askai.providers import BaseProvider, reset_availability_cache


class FakeProvider(BaseProvider):
    """Scripted generator. `reply` is a string or a callable of the full prompt."""

    install_hint = "Install the fake generator."

    def __init__(self, name="gemini", reply="echo ok", available=True):
        super().__init__(timeout=5.0)
        self.name = name
        self.reply = reply
        self.available = available
        self.prompts: list[str] = []

    def probe(self) -> bool:
        return self.available

    def invoke(self, full_prompt: str) -> str:
        self.prompts.append(full_prompt)
        if callable(self.reply):
            return self.reply(full_prompt)
        return self.reply

    @property
    def calls(self) -> int:
        return len(self.prompts)


def factory_for(*providers):
    by_name = {p.name: p for p in providers}

    def factory(name, config):
        if name not in by_name:
            raise UnknownProvider(f"Unknown provider: {name}")
        return by_name[name]

    return factory


@pytest.fixture(autouse=True)
def _fresh_availability():
    reset_availability_cache()
    yield
    reset_availability_cache()


@pytest.fixture
def home(tmp_path, monkeypatch):
    path = tmp_path / "askai-home"
    monkeypatch.setenv("ASKAI_HOME", str(path))
    monkeypatch.setenv("ASKAI_NO_DAEMON", "1")
    monkeypatch.delenv("ASKAI_PROVIDER", raising=False)
    return path


@pytest.fixture
def config(home):
    return load_config(home)


@pytest.fixture
def short_dir():
    # AF_UNIX paths are limited to ~108 bytes
    path = Path(tempfile.mkdtemp(prefix="askai-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)
