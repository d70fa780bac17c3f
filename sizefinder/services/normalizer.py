import math
import re
from typing import Any, Dict, Optional

from ..schemas.recommend import BraSize, NormalizedMeasurements, NormalizedRequest, Preferences


CM_PER_INCH = 2.54
KG_PER_LB = 0.453592

# Bust-minus-band difference per cup, in inches
CUP_INCREMENT_IN: Dict[str, float] = {
    "A": 2.5,
    "B": 5.0,
    "C": 7.5,
    "D": 10.0,
    "DD": 12.5,
    "E": 12.5,
    "F": 15.0,
}
DEFAULT_CUP_INCREMENT_IN = CUP_INCREMENT_IN["C"]

_BRA_RE = re.compile(r"^(\d{2})([A-Z]+)$")


def in_to_cm(value: float) -> float:
    return value * CM_PER_INCH


def cm_to_in(value: float) -> float:
    return value / CM_PER_INCH


def lb_to_kg(value: float) -> float:
    return value * KG_PER_LB


def kg_to_lb(value: float) -> float:
    return value / KG_PER_LB


def _as_number(value: Any) -> Optional[float]:
    # Zero counts as absent, like the storefront's truthiness checks
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return _finite(number) if number != 0 else None


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _as_flag(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def parse_bra(bra: Any) -> BraSize:
    """Split a bra size such as ``"36C"`` or ``" 34 dd "`` into band and cup."""
    text = _as_text(bra)
    if not text:
        return BraSize()
    m = _BRA_RE.match(re.sub(r"\s+", "", text).upper())
    if not m:
        return BraSize()
    return BraSize(band=int(m.group(1)), cup=m.group(2))


def estimate_bust_from_bra(bra: BraSize, chart_unit: str = "cm") -> Optional[float]:
    if not bra.band or not bra.cup:
        return None
    bust_in = bra.band + CUP_INCREMENT_IN.get(bra.cup, DEFAULT_CUP_INCREMENT_IN)
    return in_to_cm(bust_in) if chart_unit == "cm" else bust_in


def _circumference(payload: Dict[str, Any], key: str, unit_system: str, chart_unit: str) -> Optional[float]:
    explicit_in = _as_number(payload.get(f"{key}_in"))
    if explicit_in is not None:
        return _finite(in_to_cm(explicit_in)) if chart_unit == "cm" else explicit_in

    legacy = _as_number(payload.get(key))
    if legacy is None:
        return None
    if unit_system == "imperial":
        return _finite(in_to_cm(legacy)) if chart_unit == "cm" else legacy
    return legacy if chart_unit == "cm" else cm_to_in(legacy)


def _rounded(value: float) -> Optional[float]:
    if not math.isfinite(value):
        return None
    return float(round(value))


def _height_cm(payload: Dict[str, Any], unit_system: str) -> Optional[float]:
    explicit = _as_number(payload.get("height_cm"))
    if explicit is not None:
        return explicit
    legacy = _as_number(payload.get("height"))
    if legacy is None:
        return None
    return _rounded(in_to_cm(legacy) if unit_system == "imperial" else legacy)


def _weight_kg(payload: Dict[str, Any], unit_system: str) -> Optional[float]:
    explicit = _as_number(payload.get("weight_kg"))
    if explicit is not None:
        return explicit
    legacy = _as_number(payload.get("weight"))
    if legacy is None:
        return None
    return _rounded(lb_to_kg(legacy) if unit_system == "imperial" else legacy)


def normalize_request(payload: Dict[str, Any], chart_unit: str = "cm") -> NormalizedRequest:
    """Resolve a raw recommend payload into one unit system.

    Explicit fields (``bust_in``, ``height_cm``, ...) win over legacy ones
    (``bust``, ``height``, ...), which are read according to the ``unit`` tag.
    A bra size only fills in bust when nothing else provided it. Values that are
    missing, zero or not plain JSON numbers come back as ``None``.
    """
    unit_system = "imperial" if payload.get("unit") == "imperial" else "metric"
    bra = parse_bra(payload.get("bra"))

    bust = _circumference(payload, "bust", unit_system, chart_unit)
    if bust is None:
        bust = estimate_bust_from_bra(bra, chart_unit)

    measurements = NormalizedMeasurements(
        bust=bust,
        waist=_circumference(payload, "waist", unit_system, chart_unit),
        hip=_circumference(payload, "hip", unit_system, chart_unit),
        height_cm=_height_cm(payload, unit_system),
        weight_kg=_weight_kg(payload, unit_system),
    )
    preferences = Preferences(
        activity=_as_text(payload.get("activity")),
        modesty=_as_text(payload.get("modesty")),
        tummy_control=_as_flag(payload.get("tummy_control")),
        style_preference=_as_text(payload.get("style_preference")),
    )
    return NormalizedRequest(
        unit_system=unit_system,
        measurements=measurements,
        bra=bra,
        preferences=preferences,
        product_handle=_as_text(payload.get("product_handle")),
        product_title=_as_text(payload.get("product_title")),
    )
