import os
import shutil
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "backend"))

import server

REPO_DATA = os.path.join(os.path.dirname(__file__), "..", "..", "data")


class _FakeService:
    def __init__(self):
        self.swapped = []

    def swap_data(self, data):
        self.swapped.append(data)
        return 0


def test_reload_skips_when_mtime_unchanged(monkeypatch):
    monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
    monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 100.0)

    called = {"count": 0}

    def fake_load_data(_path, _passing_score):
        called["count"] += 1
        return {}

    monkeypatch.setattr(server, "load_data", fake_load_data)

    changed = server._reload_data_if_changed()
    assert changed is False
    assert called["count"] == 0


def test_reload_swaps_curriculum_when_mtime_advances(monkeypatch):
    old_data = {"catalog_codes": {"OLD100"}, "graph": "old_graph"}
    new_data = {"catalog_codes": {"NEW200"}, "graph": "new_graph"}
    fake_service = _FakeService()

    monkeypatch.setattr(server, "_data", old_data, raising=False)
    monkeypatch.setattr(server, "_service", fake_service, raising=False)
    monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
    monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 200.0)
    monkeypatch.setattr(server, "load_data", lambda _path, _passing_score: new_data)

    changed = server._reload_data_if_changed()
    assert changed is True
    assert server._data is new_data
    assert fake_service.swapped == [new_data]
    assert server._data_mtime == 200.0


def test_forced_reload_ignores_mtime(monkeypatch):
    new_data = {"catalog_codes": {"NEW200"}}
    fake_service = _FakeService()

    monkeypatch.setattr(server, "_data", {"catalog_codes": set()}, raising=False)
    monkeypatch.setattr(server, "_service", fake_service, raising=False)
    monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
    monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 100.0)
    monkeypatch.setattr(server, "load_data", lambda _path, _passing_score: new_data)

    assert server._reload_data_if_changed(force=True) is True
    assert fake_service.swapped == [new_data]


def test_reload_failure_keeps_previous_data(monkeypatch, capsys):
    old_data = {"catalog_codes": {"OLD100"}, "graph": "old_graph"}
    fake_service = _FakeService()

    monkeypatch.setattr(server, "_data", old_data, raising=False)
    monkeypatch.setattr(server, "_service", fake_service, raising=False)
    monkeypatch.setattr(server, "_data_mtime", 100.0, raising=False)
    monkeypatch.setattr(server, "_data_file_mtime", lambda _path: 200.0)

    def boom(_path, _passing_score):
        raise RuntimeError("reload failed")

    monkeypatch.setattr(server, "load_data", boom)

    changed = server._reload_data_if_changed()
    assert changed is False
    assert server._data is old_data
    assert fake_service.swapped == []
    assert server._data_mtime == 100.0
    assert "keeping previous curriculum graph" in capsys.readouterr().err


def test_reload_passes_configured_passing_score(monkeypatch):
    seen = []
    monkeypatch.setattr(server, "_data", {"catalog_codes": set()}, raising=False)
    monkeypatch.setattr(server, "_service", _FakeService(), raising=False)
    monkeypatch.setattr(server, "_PASSING_SCORE", 6.5)

    def fake_load_data(_path, passing_score):
        seen.append(passing_score)
        return {"catalog_codes": set()}

    monkeypatch.setattr(server, "load_data", fake_load_data)

    assert server._reload_data_if_changed(force=True) is True
    assert seen == [6.5]


def test_reload_rejects_unknown_roadmap_status(monkeypatch, tmp_path, capsys):
    data_dir = tmp_path / "data"
    shutil.copytree(REPO_DATA, data_dir)
    roadmap_csv = data_dir / "roadmap.csv"
    roadmap_csv.write_text(roadmap_csv.read_text().replace("SP25,InProgress", "SP25,Done"))
    old_data = {"catalog_codes": {"OLD100"}}
    fake_service = _FakeService()

    monkeypatch.setattr(server, "DATA_PATH", str(data_dir))
    monkeypatch.setattr(server, "_data", old_data, raising=False)
    monkeypatch.setattr(server, "_service", fake_service, raising=False)

    assert server._reload_data_if_changed(force=True) is False
    assert server._data is old_data
    assert fake_service.swapped == []
    assert "Roadmap data invalid" in capsys.readouterr().err
