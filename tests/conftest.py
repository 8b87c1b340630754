import importlib
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Ensure we can import the scripts in src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

EE_MODULES = [
    "gee_common",
    "chirps_rainfall",
    "dem_elevation",
    "gsw_water_change",
    "gfc_forest_change",
    "ndvi_anomalies",
    "wdpa_protected_areas",
]


@pytest.fixture
def fake_ee(monkeypatch):
    """Replace the earthengine module everywhere with one MagicMock (no auth, no network)."""
    fake = MagicMock(name="ee")
    for name in EE_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "ee", fake)
    return fake
