"""Location normalization utilities.

Provides functions for Taiwanese city/county names, address assembly for
geocoding, and the location key used for deduplication.
"""

import re

# The 22 special municipalities, cities and counties, in the 台 spelling
VALID_CITIES = (
    "台北市", "新北市", "桃園市", "台中市", "台南市", "高雄市",
    "基隆市", "新竹市", "嘉義市", "新竹縣", "苗栗縣", "彰化縣",
    "南投縣", "雲林縣", "嘉義縣", "屏東縣", "宜蘭縣", "花蓮縣",
    "台東縣", "澎湖縣", "金門縣", "連江縣",
)

# Bare names mapped to the city they most often mean
CITY_FUZZY_MAP = {
    "台北": "台北市",
    "新北": "新北市",
    "桃園": "桃園市",
    "台中": "台中市",
    "台南": "台南市",
    "高雄": "高雄市",
    "基隆": "基隆市",
    "新竹": "新竹市",
    "嘉義": "嘉義市",
}

# Whitespace, ASCII and full-width parentheses, hyphens
_LOCATION_NOISE_RE = re.compile(r"[()\s\-（）]")


def fold_city_variant(text: str) -> str:
    """Fold the traditional 臺 to 台, the spelling used everywhere else."""
    return text.replace("臺", "台")


def normalize_city(city: str | None) -> str | None:
    """Validate a city/county name, repairing common short forms.

    Examples:
        "臺北市" -> "台北市"
        "台北" -> "台北市"
        "高雄市左營區" -> "高雄市"
        "南部" -> None

    Args:
        city: City name as found on a poster or page

    Returns:
        One of VALID_CITIES, or None if the name cannot be repaired
    """
    if not city:
        return None

    city = fold_city_variant(city.strip())
    if city in VALID_CITIES:
        return city

    for valid in VALID_CITIES:
        if valid in city:
            return valid

    for key, value in CITY_FUZZY_MAP.items():
        if key in city:
            return value

    return None


def extract_city_from_text(text: str | None) -> str | None:
    """Find the first full city/county name mentioned in a text."""
    if not text:
        return None

    folded = fold_city_variant(text)
    positions = [(folded.find(c), c) for c in VALID_CITIES if c in folded]
    if not positions:
        return None
    return min(positions)[1]


def build_full_address(
    city: str | None,
    district: str | None,
    location: str | None,
) -> str:
    """Join the present address parts in city, district, location order.

    No separator is inserted: Taiwanese addresses are written without one
    and the geocoder resolves the concatenation.
    """
    return "".join(part.strip() for part in (city, district, location) if part and part.strip())


def normalize_location_key(location: str | None) -> str:
    """Normalize a venue string for same-occasion comparison.

    Removes whitespace, parentheses (ASCII and full-width) and hyphens,
    folds 臺 to 台 and lowercases.
    """
    if not location:
        return ""
    return _LOCATION_NOISE_RE.sub("", fold_city_variant(location)).lower()


_DISTRICT_RE = re.compile(r"^(.{1,3}?[區鄉鎮市])")


def split_address(text: str | None) -> tuple[str | None, str | None, str | None]:
    """Split a "city + district + place" string into its parts.

    Only a leading full city name is recognized; without one the whole text
    is returned as the location.

    Example:
        "臺北市中正區中山南路21號" -> ("台北市", "中正區", "中山南路21號")

    Returns:
        Tuple of (city, district, location)
    """
    if not text:
        return None, None, None

    text = text.strip()
    folded = fold_city_variant(text)
    city = next((c for c in VALID_CITIES if folded.startswith(c)), None)
    if city is None:
        return None, None, text

    rest = text[len(city):].strip()
    district = None
    match = _DISTRICT_RE.match(rest)
    if match and len(rest) > len(match.group(1)):
        district = match.group(1)
        rest = rest[len(district):].strip()

    return city, district, rest or None
