from typing import Tuple

SIGN_NAMES = ["Aries","Taurus","Gemini","Cancer","Leo","Virgo","Libra","Scorpio","Sagittarius","Capricorn","Aquarius","Pisces"]


def normalize_lon(lon: float) -> float:
    lon = lon % 360.0
    # -1e-17 % 360 rounds up to 360.0
    return 0.0 if lon >= 360.0 else lon


def sign_index_from_lon(lon: float) -> int:
    return int(normalize_lon(lon) // 30) % 12


def sign_of(lon: float) -> Tuple[str, float]:
    """Return ``(sign, degree within sign)`` for an ecliptic longitude."""

    lon = normalize_lon(lon)
    return SIGN_NAMES[sign_index_from_lon(lon)], lon % 30.0
