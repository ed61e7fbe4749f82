"""
Location Name Normalization

Geocoders, admins and legacy data spell the same places differently:
- State short codes ("KA", "KT") vs full names
- Renamed cities (Bengaluru/Bangalore, Belagavi/Belgaum, ...)
- "Mysore District" vs "Mysore"

CANONICAL FORMS:
━━━━━━━━━━━━━━━━
• canonical_state("KA")            -> "Karnataka"
• normalize_district("Mysuru  District") -> "mysore"
• display_city_name("Belagavi")    -> "Belgaum"

normalize_district() produces a comparison KEY (lowercase), never a display value.
"""

import re
from typing import Iterable, List, Optional


# Short codes and spellings -> canonical state name (keys are casefolded)
STATE_ALIASES = {
    "karnataka": "Karnataka",
    "ka": "Karnataka",
    "kt": "Karnataka",
}

# Current official name -> historical name the storefront data uses (keys casefolded)
DISTRICT_ALIASES = {
    "bengaluru": "bangalore",
    "bengaluru urban": "bangalore urban",
    "bengaluru rural": "bangalore rural",
    "mysuru": "mysore",
    "belagavi": "belgaum",
    "kalaburagi": "gulbarga",
    "vijayapura": "bijapur",
    "ballari": "bellary",
    "shivamogga": "shimoga",
    "tumakuru": "tumkur",
    "chikkamagaluru": "chikmagalur",
    "mangaluru": "mangalore",
    "hubballi": "hubli",
}

# Display-level renames applied to geocoder output
CITY_ALIASES = {
    "Belagavi": "Belgaum",
}

_WHITESPACE = re.compile(r"\s+")
_DISTRICT_SUFFIX = " district"


def canonical_state(name: Optional[str]) -> str:
    """Map a state name or short code to its canonical name ("" for empty input)."""
    if not name:
        return ""
    cleaned = _WHITESPACE.sub(" ", name).strip()
    return STATE_ALIASES.get(cleaned.casefold(), cleaned)


def normalize_district(name: Optional[str]) -> str:
    """
    Comparison key for a district name.

    casefold, collapse whitespace, strip a trailing " district",
    then map known transliterations onto one key.
    """
    if not name:
        return ""
    key = _WHITESPACE.sub(" ", name).strip().casefold()
    if key.endswith(_DISTRICT_SUFFIX):
        key = key[: -len(_DISTRICT_SUFFIX)].rstrip()
    return DISTRICT_ALIASES.get(key, key)


def display_city_name(name: str) -> str:
    return CITY_ALIASES.get(name, name)


def dedupe_districts(districts: Iterable[str]) -> List[str]:
    """Trim and drop districts whose normalized key was already seen (first spelling wins)."""
    seen = set()
    result = []
    for district in districts:
        if not district or not district.strip():
            continue
        key = normalize_district(district)
        if key in seen:
            continue
        seen.add(key)
        result.append(_WHITESPACE.sub(" ", district).strip())
    return result


def states_match(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and canonical_state(a).casefold() == canonical_state(b).casefold()
