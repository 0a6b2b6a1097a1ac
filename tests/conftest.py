"""
Pytest configuration and fixtures for gymscore tests
"""
import pytest

from gymscore.storage import SheetBridge, json_store

WOMEN_CSV = (
    "クラス,組,,名前,床,跳馬,段違い平行棒,平均台\n"
    "上級,1,,佐藤 花子,9.5,9.0,8.75,9.1\n"
    "上級,1,,鈴木 美咲,9.5,9.0,8.75,9.1\n"
    "中級,2,,高橋 愛,8.0,8.5,7.9,8.2\n"
)


@pytest.fixture(autouse=True)
def storage_dir(tmp_path, monkeypatch):
    """Keep snapshots and audit events out of the working directory."""
    path = tmp_path / "data"
    monkeypatch.setattr(json_store, "STORAGE_DIR", str(path))
    return path


@pytest.fixture
def offline_bridge():
    """A bridge with no URL: every sheet call fails with SheetBridgeNotConfigured."""
    return SheetBridge("")


@pytest.fixture
def women_csv():
    return WOMEN_CSV
