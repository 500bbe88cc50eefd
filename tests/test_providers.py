from billtracker.core.config import TrackerConfig
from billtracker.providers import (
    PROVIDERS,
    ATTProvider,
    AtmosEnergyProvider,
    ManualProvider,
    SmartHubProvider,
    build_providers,
    get_provider,
)


def test_registry_types():
    assert set(PROVIDERS) == {"manual", "smarthub", "atmos", "att", "api", "oauth", "scrape"}
    assert get_provider("nope", {}) is None
    assert isinstance(get_provider("MANUAL", {}), ManualProvider)


def test_build_providers_in_selection_order(tmp_path):
    """Configured entries build in order; unknown ids and misconfigured entries are skipped."""
    config = TrackerConfig(data={
        "sessions": {"directory": str(tmp_path)},
        "providers": [
            {"type": "manual", "id": "home", "entries": []},
            {"type": "smarthub", "id": "coserv", "name": "CoServ Gas"},  # no base_url
            {"type": "smarthub", "id": "farmers", "name": "Farmers Electric",
             "base_url": "https://farmersele.smarthub.coop"},
            {"type": "fax-machine", "id": "fax"},
            {"type": "atmos"},
        ],
    }, environ={})

    providers = build_providers(config)

    assert [type(p) for p in providers] == [ManualProvider, SmartHubProvider, AtmosEnergyProvider]
    assert [p.name for p in providers] == ["Manual", "Farmers Electric", "Atmos Energy"]


def test_build_providers_only(tmp_path):
    config = TrackerConfig(data={"providers": [{"type": "manual"}, {"type": "atmos"}]}, environ={})
    providers = build_providers(config, only=["atmos", "att", "unknown"])
    assert [type(p) for p in providers] == [AtmosEnergyProvider, ATTProvider]


def test_build_providers_from_environment():
    config = TrackerConfig(
        data={"providers": [{"type": "manual"}, {"type": "atmos"}]},
        environ={"BILL_PROVIDERS": "manual"},
    )
    assert [type(p) for p in build_providers(config)] == [ManualProvider]
