import json

from typer.testing import CliRunner

from tests.fakes import RecordingDisplay
from tubebreak.cli import app
from tubebreak.state import ConfigStore

runner = CliRunner()


def _invoke(base_dir, *args):
    return runner.invoke(app, [*args, "--config-dir", str(base_dir)])


def test_init_creates_configuration(tmp_path):
    base_dir = tmp_path / "tb"

    result = _invoke(base_dir, "init")

    assert result.exit_code == 0, result.output
    assert (base_dir / "config.yml").exists()
    assert (base_dir / "extension.json").exists()


def test_add_list_and_remove_without_resolving(tmp_path):
    base_dir = tmp_path / "tb"

    result = _invoke(base_dir, "add", "https://www.youtube.com/playlist?list=PLbreaks", "--no-resolve")
    assert result.exit_code == 0, result.output
    assert "PLbreaks" in result.output

    listed = _invoke(base_dir, "list")
    assert listed.exit_code == 0
    assert "PLbreaks" in listed.output

    removed = _invoke(base_dir, "remove", "PLbreaks")
    assert removed.exit_code == 0
    assert ConfigStore(base_dir / "extension.json").load().playlists == []


def test_add_without_credential_keeps_playlist_unresolved(tmp_path):
    base_dir = tmp_path / "tb"

    result = _invoke(base_dir, "add", "PLnokey")

    assert result.exit_code == 0, result.output
    source = ConfigStore(base_dir / "extension.json").load().get("PLnokey")
    assert source.items_resolved is False


def test_add_duplicate_fails(tmp_path):
    base_dir = tmp_path / "tb"
    _invoke(base_dir, "add", "PL1", "--no-resolve")

    result = _invoke(base_dir, "add", "PL1", "--no-resolve")

    assert result.exit_code == 1
    assert "already added" in result.output


def test_remove_unknown_playlist_fails(tmp_path):
    result = _invoke(tmp_path / "tb", "remove", "missing")

    assert result.exit_code == 1
    assert "not configured" in result.output


def test_enable_disable_round_trip(tmp_path):
    base_dir = tmp_path / "tb"
    store = ConfigStore(base_dir / "extension.json")

    assert _invoke(base_dir, "disable").exit_code == 0
    assert store.load().enabled is False
    assert _invoke(base_dir, "enable").exit_code == 0
    assert store.load().enabled is True


def test_tick_while_disabled_reports_status(tmp_path):
    base_dir = tmp_path / "tb"
    _invoke(base_dir, "disable")

    result = _invoke(base_dir, "tick", "--at", "2024-05-06T10:25:00+00:00")

    assert result.exit_code == 0, result.output
    assert "phase=break" in result.output
    assert "status=disabled" in result.output


def test_tick_with_empty_pool(tmp_path):
    result = _invoke(tmp_path / "tb", "tick", "--at", "2024-05-06T10:55:00")

    assert result.exit_code == 0, result.output
    assert "status=no_items" in result.output


def test_tick_rejects_bad_timestamp(tmp_path):
    result = _invoke(tmp_path / "tb", "tick", "--at", "yesterday")

    assert result.exit_code != 0


def test_open_with_cached_items(tmp_path, monkeypatch):
    base_dir = tmp_path / "tb"
    store = ConfigStore(base_dir / "extension.json")

    def seed(config):
        config.add_playlist("PL1")
        config.store_items("PL1", ["vid1"])

    store.update(seed)
    display = RecordingDisplay()
    monkeypatch.setattr("tubebreak.app_context.BrowserDisplay", lambda settings: display)

    result = _invoke(base_dir, "open")

    assert result.exit_code == 0, result.output
    assert "embed/vid1" in result.output
    assert display.shown == ["vid1"]


def test_open_with_empty_pool_fails(tmp_path):
    result = _invoke(tmp_path / "tb", "open")

    assert result.exit_code == 1
    assert "No videos available" in result.output


def test_status_output(tmp_path):
    base_dir = tmp_path / "tb"
    _invoke(base_dir, "add", "PL1", "--no-resolve")

    result = _invoke(base_dir, "status")

    assert result.exit_code == 0, result.output
    assert "Enabled: True" in result.output
    assert "Next break:" in result.output
    assert "Playlists: 1" in result.output


def test_doctor_without_credential(tmp_path):
    result = _invoke(tmp_path / "tb", "doctor")

    assert result.exit_code == 1
    assert "No YouTube API key" in result.output


def test_invalid_config_exits_with_error(tmp_path):
    base_dir = tmp_path / "tb"
    base_dir.mkdir()
    (base_dir / "config.yml").write_text(json.dumps({"unknown": True}), encoding="utf-8")

    result = _invoke(base_dir, "list")

    assert result.exit_code == 1
    assert "Error loading configuration" in result.output
