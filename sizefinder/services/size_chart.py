import json
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from ..schemas.recommend import SizeChartEntry


SIZE_ORDER: List[str] = ["S", "M", "L", "XL", "XXL"]
CHART_UNITS = ("cm", "in")


@dataclass(frozen=True)
class SizeChart:
    unit: str
    entries: Tuple[SizeChartEntry, ...]

    @property
    def labels(self) -> List[str]:
        return [e.label for e in self.entries]


# Bust/waist/hip in cm per size
CHART_CM = SizeChart(
    unit="cm",
    entries=(
        SizeChartEntry(label="S", bust=(80, 86), waist=(64, 70), hip=(86, 94)),
        SizeChartEntry(label="M", bust=(87, 94), waist=(71, 78), hip=(95, 101)),
        SizeChartEntry(label="L", bust=(95, 101), waist=(79, 86), hip=(102, 108)),
        SizeChartEntry(label="XL", bust=(102, 108), waist=(87, 94), hip=(109, 115)),
        SizeChartEntry(label="XXL", bust=(109, 116), waist=(95, 104), hip=(116, 124)),
    ),
)

# Brand swimwear chart (inches)
CHART_IN = SizeChart(
    unit="in",
    entries=(
        SizeChartEntry(label="S", bust=(32, 34), waist=(28, 30), hip=(34, 36)),
        SizeChartEntry(label="M", bust=(34, 36), waist=(30, 32), hip=(36, 38)),
        SizeChartEntry(label="L", bust=(36, 38), waist=(32, 34), hip=(38, 40)),
        SizeChartEntry(label="XL", bust=(38, 40), waist=(34, 36), hip=(40, 42)),
        SizeChartEntry(label="XXL", bust=(40, 42), waist=(36, 38), hip=(42, 44)),
    ),
)

BUILTIN_CHARTS: Dict[str, SizeChart] = {"cm": CHART_CM, "in": CHART_IN}


def _normalize_unit(unit: str) -> str:
    u = (unit or "cm").strip().lower()
    if u in ("in", "inch", "inches"):
        return "in"
    if u in ("cm", "centimeter", "centimeters"):
        return "cm"
    raise ValueError(f"Unsupported size chart unit: {unit!r}")


def _parse_range(row: Dict[str, Any], key: str) -> Tuple[float, float]:
    raw = row.get(key)
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ValueError(f"Size chart row {row.get('label')!r}: '{key}' must be a [low, high] pair")
    low, high = float(raw[0]), float(raw[1])
    if low > high:
        raise ValueError(f"Size chart row {row.get('label')!r}: '{key}' low {low} exceeds high {high}")
    return low, high


def parse_size_chart(data: Dict[str, Any]) -> SizeChart:
    """Build a chart from its JSON form.

    Expected shape::

        {"unit": "cm", "sizes": [{"label": "S", "bust": [80, 86], "waist": [64, 70], "hip": [86, 94]}, ...]}

    Rows keep their file order; that order is the tie-break order of the lookup.
    """
    if not isinstance(data, dict):
        raise ValueError("Size chart must be a JSON object")
    unit = _normalize_unit(str(data.get("unit", "cm")))
    rows = data.get("sizes")
    if not isinstance(rows, list) or not rows:
        raise ValueError("Size chart must contain a non-empty 'sizes' list")

    entries = []
    for row in rows:
        if not isinstance(row, dict) or not row.get("label"):
            raise ValueError("Every size chart row needs a 'label'")
        entries.append(
            SizeChartEntry(
                label=str(row["label"]),
                bust=_parse_range(row, "bust"),
                waist=_parse_range(row, "waist"),
                hip=_parse_range(row, "hip"),
            )
        )
    return SizeChart(unit=unit, entries=tuple(entries))


def load_size_chart(path: str | None = None, unit: str = "cm") -> SizeChart:
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Could not read size chart from {path}: {e}") from e
        return parse_size_chart(data)
    return BUILTIN_CHARTS[_normalize_unit(unit)]
