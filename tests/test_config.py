import json

import pytest

from civic_locator import config
from civic_locator.engine import build_engine
from civic_locator.merger import merge
from civic_locator.models import Candidate, SourceKind

OVERRIDABLE = (
    "SERVICE_AREA_NAME",
    "SERVICE_AREA_VIEWBOX",
    "SERVICE_AREA_COUNTRY",
    "DEFAULT_CENTER",
    "SECTION_GEOCODED",
    "NEARBY_DEFAULT_RADIUS_M",
    "NEARBY_DEFAULT_LIMIT",
    "BLOCKED_EXTERNAL_IDS",
    "DEFAULT_ZOOM",
)


@pytest.fixture
def restore_config(monkeypatch):
    for name in OVERRIDABLE:
        monkeypatch.setattr(config, name, getattr(config, name))


def test_missing_config_file_keeps_defaults(tmp_path, restore_config):
    assert config.load_locator_config(str(tmp_path / "nope.json")) is False
    assert config.SERVICE_AREA_NAME == "Bengaluru"
    assert "459471357" in config.BLOCKED_EXTERNAL_IDS


def test_config_file_overrides_service_area(tmp_path, restore_config):
    path = tmp_path / "locator_config.json"
    path.write_text(
        json.dumps(
            {
                "service_area": {
                    "name": "Mysuru",
                    "viewbox": {"west": 76.55, "north": 12.40, "east": 76.75, "south": 12.23},
                    "country": "IN",
                    "center": {"lat": 12.2958, "lng": 76.6394},
                },
                "nearby": {"radius_m": 300, "limit": 10},
                "blocked_ids": [111, "222"],
            }
        ),
        encoding="utf-8",
    )

    assert config.load_locator_config(str(path)) is True

    assert config.SERVICE_AREA_NAME == "Mysuru"
    assert config.SERVICE_AREA_VIEWBOX == (76.55, 12.40, 76.75, 12.23)
    assert config.SERVICE_AREA_COUNTRY == "in"
    assert config.DEFAULT_CENTER == (12.2958, 76.6394)
    assert config.NEARBY_DEFAULT_RADIUS_M == 300
    assert config.NEARBY_DEFAULT_LIMIT == 10
    assert {"111", "222", "459471357"} <= config.BLOCKED_EXTERNAL_IDS

    result = merge([], [Candidate("Palace", 12.3051, 76.6551, SourceKind.GEOCODED, "222")])
    assert result.is_empty


def test_bad_viewbox_is_rejected(tmp_path, restore_config):
    path = tmp_path / "locator_config.json"
    path.write_text(json.dumps({"service_area": {"viewbox": [1, 2, 3]}}), encoding="utf-8")

    with pytest.raises(ValueError):
        config.load_locator_config(str(path))


class OfflineHttp:
    user_agent = "civic-locator-tests"


def test_overrides_reach_engine_built_after_loading(tmp_path, restore_config):
    path = tmp_path / "locator_config.json"
    path.write_text(
        json.dumps(
            {
                "service_area": {"center": {"lat": 12.30, "lng": 76.64}},
                "nearby": {"radius_m": 900, "limit": 7},
            }
        ),
        encoding="utf-8",
    )
    config.load_locator_config(str(path))

    engine = build_engine(state_path=None, http_client=OfflineHttp())

    assert engine.session.nearby_radius == 900
    assert engine.session.nearby_limit == 7
    assert engine.map_surface.center == (12.30, 76.64)
    assert engine.map_surface.marker == (12.30, 76.64)
