import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _report_store_in_tmp(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    # core.config reads env once at import; patch the constants the store factory uses.
    from app.reporting import store

    monkeypatch.setattr(store, "REPORT_STORE", "file")
    monkeypatch.setattr(store, "REPORT_DATA_DIR", tmp_path / "interviews")


@pytest.fixture(autouse=True)
def _reset_metrics():
    from app.system_metrics import reset_metrics

    reset_metrics()
    yield
    reset_metrics()
