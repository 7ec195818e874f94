from datetime import datetime, timezone

import pytest

from pythia.schemas import ChartInputs
from pythia.services import assembler
from pythia.services.aspects import MAJOR_ASPECTS
from pythia.services.errors import HouseCalculationFailed, InvalidHouseSystem, InvalidLocalTime, UnresolvableLocation
from pythia.services.houses import house_of

from pythia.services.geo import GeoResolver, Place

from conftest import EQUAL_CUSPS, FakeEphemeris, FakeGeocoder, FakeTimeZoneLookup


def test_greenwich_scenario(greenwich_inputs, resolver, fake_library):
    doc = assembler.compute_chart(greenwich_inputs, resolver=resolver, library=fake_library)
    assert doc.meta.engine_version.startswith("swisseph-")
    assert doc.meta.date == "2000-01-01 12:00:00 UTC"
    assert doc.meta.location == "Greenwich, London, UK"
    assert (doc.meta.latitude, doc.meta.longitude) == (51.48, 0.0)
    assert doc.meta.timezone == "Europe/London"
    sun = doc.positions["Sun"]
    assert sun.sign == "Capricorn"
    assert sun.sign_degree == pytest.approx(10.5)


def test_meta_inputs_are_the_callers_inputs(greenwich_inputs, resolver, fake_library):
    doc = assembler.compute_chart(greenwich_inputs, resolver=resolver, library=fake_library)
    assert doc.meta.inputs == greenwich_inputs
    # formatted place name never leaks into the stored inputs
    assert doc.meta.inputs.location == "Greenwich, UK"
    assert doc.meta.inputs.time == "12:00"


def test_positions_are_classified(greenwich_inputs, resolver, fake_library):
    doc = assembler.compute_chart(greenwich_inputs, resolver=resolver, library=fake_library)
    assert doc.houses.cusps == EQUAL_CUSPS
    for name, pos in doc.positions.items():
        assert 0.0 <= pos.longitude < 360.0
        assert pos.sign_degree == pytest.approx(pos.longitude % 30.0)
        assert pos.house == house_of(pos.longitude, doc.houses.cusps)
        assert pos.house is not None


def test_houses_skipped_for_auxiliary_charts(greenwich_inputs, resolver, fake_library):
    doc = assembler.compute_chart(greenwich_inputs, include_houses=False, resolver=resolver, library=fake_library)
    assert doc.houses is None
    assert doc.meta.house_system is None
    assert all(p.house is None for p in doc.positions.values())


def test_missing_body_excluded_from_positions_and_aspects(greenwich_inputs, resolver):
    lib = FakeEphemeris(failing={"Chiron"})
    doc = assembler.compute_chart(greenwich_inputs, resolver=resolver, library=lib)
    assert "Chiron" not in doc.positions
    assert all("Chiron" not in (a.planet1, a.planet2) for a in doc.aspects)


def test_aspects_have_no_duplicate_pairs(greenwich_inputs, resolver, fake_library):
    doc = assembler.compute_chart(greenwich_inputs, resolver=resolver, library=fake_library)
    pairs = [frozenset((a.planet1, a.planet2)) for a in doc.aspects]
    assert len(pairs) == len(set(pairs))
    assert all(a.planet1 != a.planet2 for a in doc.aspects)
    # Pluto 251.5 / Chiron 251.6
    assert any(p == frozenset(("Pluto", "Chiron")) for p in pairs)


def test_catalog_is_selectable(greenwich_inputs, resolver, fake_library):
    doc = assembler.compute_chart(greenwich_inputs, resolver=resolver, library=fake_library, catalog=MAJOR_ASPECTS)
    major = {k.name for k in MAJOR_ASPECTS}
    assert all(a.aspect in major for a in doc.aspects)


def test_recompute_is_deterministic(greenwich_inputs, resolver, fake_library):
    first = assembler.compute_chart(greenwich_inputs, resolver=resolver, library=fake_library)
    second = assembler.compute_chart(greenwich_inputs, resolver=resolver, library=fake_library)
    for part in ("positions", "houses", "aspects"):
        assert first.model_dump_json(include={part}) == second.model_dump_json(include={part})


def test_house_system_name_is_normalized(greenwich_inputs, resolver, fake_library):
    doc = assembler.compute_chart(greenwich_inputs, house_system="koch", resolver=resolver, library=fake_library)
    assert fake_library.house_calls == ["K"]
    assert doc.houses.system == "K"
    assert doc.meta.house_system == "K"


def test_bad_house_system_fails_before_any_lookup(greenwich_inputs, resolver, fake_library):
    with pytest.raises(InvalidHouseSystem):
        assembler.compute_chart(greenwich_inputs, house_system="??", resolver=resolver, library=fake_library)
    assert resolver.geocoder.calls == []


def test_typed_failures_propagate(resolver, fake_library):
    with pytest.raises(UnresolvableLocation):
        assembler.compute_chart(ChartInputs(year=2000, month=1, day=1, time="12:00", location="Atlantis"),
                                resolver=resolver, library=fake_library)
    with pytest.raises(InvalidLocalTime):
        assembler.compute_chart(ChartInputs(year=2021, month=3, day=14, time="02:30", location="New York, NY"),
                                resolver=resolver, library=fake_library)
    with pytest.raises(HouseCalculationFailed):
        assembler.compute_chart(ChartInputs(year=2000, month=1, day=1, time="12:00", location="Greenwich, UK"),
                                resolver=resolver, library=FakeEphemeris(houses_fail=True))


def test_date_outside_datetime_range_is_a_typed_failure(fake_library):
    tokyo = GeoResolver(
        FakeGeocoder(places={"Tokyo": Place(35.6762, 139.6503, "Tokyo, Japan")}),
        FakeTimeZoneLookup(zones={(35.6762, 139.6503): "Asia/Tokyo"}),
    )
    inputs = ChartInputs(year=1, month=1, day=1, time="00:30", location="Tokyo")
    with pytest.raises(InvalidLocalTime):
        assembler.compute_chart(inputs, resolver=tokyo, library=fake_library)
    assert fake_library.opened == 0


def test_snapshot_has_no_houses(fake_library):
    positions = assembler.compute_snapshot(datetime(2024, 6, 1, tzinfo=timezone.utc), library=fake_library)
    assert set(positions) == set(fake_library.longitudes)
    assert fake_library.house_calls == []
    assert all(p.house is None for p in positions.values())


def test_uses_production_defaults_when_not_injected(patched_engine, greenwich_inputs):
    doc = assembler.compute_chart(greenwich_inputs)
    assert doc.positions["Sun"].sign == "Capricorn"
    assert patched_engine.opened == patched_engine.closed == 1
