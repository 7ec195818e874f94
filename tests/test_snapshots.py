from datetime import datetime, timezone

import pytest

from pythia.services import assembler, snapshots

from conftest import FakeEphemeris


@pytest.fixture
def natal(greenwich_inputs, resolver, fake_library):
    return assembler.compute_chart(greenwich_inputs, resolver=resolver, library=fake_library)


def test_transits_against_identical_sky_are_conjunctions(natal, fake_library):
    positions, found = snapshots.transit_aspects(natal, datetime(2024, 1, 1, tzinfo=timezone.utc), library=fake_library)
    assert all(p.house is None for p in positions.values())
    same_body = [a for a in found if a["moving"] == a["fixed"]]
    assert len(same_body) == len(natal.positions)
    assert all(a["aspect"] == "conjunction" and a["orb"] == 0.0 for a in same_body)
    assert fake_library.house_calls == ["P"]


def test_transit_square_to_natal_sun(natal):
    lib = FakeEphemeris(longitudes={**FakeEphemeris().longitudes, "Mars": 10.0})
    _positions, found = snapshots.transit_aspects(natal, datetime(2024, 1, 1), library=lib)
    hit = [a for a in found if a["moving"] == "Mars" and a["fixed"] == "Sun"]
    assert hit and hit[0]["aspect"] == "square"
    assert hit[0]["orb"] == pytest.approx(0.5)


def test_progressed_instant_is_a_day_per_year(natal):
    target = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
    progressed = snapshots.progressed_instant(natal, target)
    days = (progressed - snapshots.natal_instant(natal)).total_seconds() / 86400
    assert days == pytest.approx(30.0, abs=0.01)


def test_progressed_aspects_use_progressed_date(natal, fake_library):
    snapshots.progressed_aspects(natal, datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc), library=fake_library)
    # natal + ~30 days
    assert fake_library.day_numbers[-1] == pytest.approx(2451545.0 + 30.0, abs=0.01)
