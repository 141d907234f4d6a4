import pytest

from trackerbot import activity, storage


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "DATA_DIR", tmp_path)
    monkeypatch.setattr(activity, "HISTORY_LIMIT", 0)
    return tmp_path
