import pytest


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    monkeypatch.delenv("TUBEBREAK_YOUTUBE_API_KEY", raising=False)
    monkeypatch.delenv("TUBEBREAK_CONFIG_DIR", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
