"""
portfolio/markets.py - Market String Normalization

Single source of canonical market keys so exposure-by-market never shows
duplicates such as "Dallas, TX" / "Dallas, Tx" / "Dallas, Texas".

market_key   = lower(city) + "|" + USPS state abbreviation   (grouping)
market_label = "City, ST"                                     (display)

Deals without a usable market group under "unspecified" / "Unspecified".
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

UNSPECIFIED_MARKET_KEY = "unspecified"
UNSPECIFIED_MARKET_LABEL = "Unspecified"

# 2-letter lowercase -> USPS abbreviation (50 states + DC)
STATE_ABBR = {
    code.lower(): code
    for code in (
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA", "HI", "ID",
        "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN", "MS",
        "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH", "OK",
        "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV",
        "WI", "WY", "DC",
    )
}

# Full state name (lowercase) -> USPS abbreviation
STATE_FULL = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ",
    "new mexico": "NM", "new york": "NY", "north carolina": "NC",
    "north dakota": "ND", "ohio": "OH", "oklahoma": "OK", "oregon": "OR",
    "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
    "district of columbia": "DC", "washington dc": "DC", "d.c.": "DC",
}

_CITY_ABBREVIATIONS = {"st": "St.", "st.": "St.", "ft": "Ft.", "ft.": "Ft.", "mt": "Mt."}


@dataclass(frozen=True)
class NormalizedMarket:
    city: Optional[str]
    state: Optional[str]
    market_key: Optional[str]
    market_label: Optional[str]


def _trim_and_collapse(value: str) -> str:
    text = re.sub(r"\s+", " ", value.strip())
    return re.sub(r"[,.]+\s*$", "", text).strip()


def normalize_state(value: Any) -> Optional[str]:
    """
    USPS abbreviation for a state string, or None.

    Handles "tx", "TX", "Texas", "Tx.", "TEXAS". Unknown two-letter strings
    are upper-cased as given.
    """
    if not isinstance(value, str):
        return None
    text = _trim_and_collapse(value).lower()
    if not text:
        return None
    if len(text) == 2 and text in STATE_ABBR:
        return STATE_ABBR[text]
    if text in STATE_FULL:
        return STATE_FULL[text]
    if len(text) == 2:
        return text.upper()
    return None


def _title_word(word: str) -> str:
    if not word:
        return word
    lower = word.lower()
    if lower in _CITY_ABBREVIATIONS:
        return _CITY_ABBREVIATIONS[lower]
    return word[0].upper() + word[1:].lower()


def normalize_city(value: Any) -> Optional[str]:
    """Title-case city for display, or None when empty."""
    if not isinstance(value, str):
        return None
    text = _trim_and_collapse(value)
    if not text:
        return None
    return " ".join(_title_word(w) for w in text.split(" "))


def _parse_market_string(market: str) -> Tuple[str, str]:
    """Split "City, ST" / "City, State" / "City ST" / "City Texas" into (city, state_raw)."""
    raw = _trim_and_collapse(market)
    if "," in raw:
        city, _, state_raw = raw.partition(",")
        return city.strip(), state_raw.strip()
    parts = raw.split(" ")
    if len(parts) >= 2:
        last = parts[-1]
        maybe_state = re.sub(r"[.,]", "", last)
        if len(maybe_state) == 2 or (len(maybe_state) > 2 and maybe_state.lower() in STATE_FULL):
            return " ".join(parts[:-1]), last
    return raw, ""


def normalize_market(
    city: Optional[str] = None,
    state: Optional[str] = None,
    market: Optional[str] = None,
) -> NormalizedMarket:
    """
    Normalize explicit city/state or a single market string.

    Explicit city/state win; the market string is parsed only when neither is
    usable.
    """
    norm_city: Optional[str] = None
    norm_state: Optional[str] = None

    has_explicit = any(
        isinstance(v, str) and _trim_and_collapse(v) for v in (city, state)
    )
    if has_explicit:
        norm_city = normalize_city(city)
        norm_state = normalize_state(state)

    market_text = _trim_and_collapse(market) if isinstance(market, str) else ""
    if market_text and not norm_city and not norm_state:
        city_raw, state_raw = _parse_market_string(market_text)
        norm_city = normalize_city(city_raw)
        norm_state = normalize_state(state_raw)
    if not norm_city and market_text and not norm_state:
        norm_city = normalize_city(market_text)

    if not norm_city and not norm_state:
        return NormalizedMarket(city=None, state=None, market_key=None, market_label=None)

    city_part = norm_city or ""
    if norm_state:
        key = f"{city_part.lower()}|{norm_state}"
        label = f"{city_part or 'Unknown'}, {norm_state}"
    else:
        key = f"{city_part.lower()}|"
        label = city_part
    return NormalizedMarket(city=norm_city, state=norm_state, market_key=key, market_label=label)


def exposure_market_key(row: Mapping[str, Any]) -> str:
    """Grouping key: stored market_key if present, else derived from market."""
    stored = row.get("market_key")
    if isinstance(stored, str) and stored:
        return stored
    return normalize_market(market=row.get("market")).market_key or UNSPECIFIED_MARKET_KEY


def exposure_market_label(row: Mapping[str, Any]) -> str:
    """Display label: stored market_label if present, else derived from market."""
    stored = row.get("market_label")
    if isinstance(stored, str) and stored:
        return stored
    return normalize_market(market=row.get("market")).market_label or UNSPECIFIED_MARKET_LABEL
