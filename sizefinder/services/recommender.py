import math
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from ..schemas.recommend import (
    AnalyticsRecord,
    NormalizedMeasurements,
    NormalizedRequest,
    Preferences,
    RecommendationResult,
    SizeChartEntry,
)
from .analytics import AnalyticsSink
from .normalizer import in_to_cm, normalize_request
from .size_chart import CHART_CM, SizeChart


logger = structlog.get_logger("sizefinder")


DEFAULT_SIZE = "M"

# BMI upper bounds (exclusive) per size; anything above the last bound is XXL
BMI_THRESHOLDS: List[Tuple[float, str]] = [
    (21.0, "S"),
    (24.0, "M"),
    (27.0, "L"),
    (31.0, "XL"),
]
BMI_TOP_SIZE = "XXL"

# Penalty per unit of distance from the range midpoint while inside the range
IN_RANGE_PENALTY = 0.1

SWIM_ACTIVITIES = {"swim_class", "aqua_fitness"}

HINT_TUMMY = "tummy-control panels"
HINT_SHOULDER = "secure shoulder coverage"
HINT_FULL = "full coverage"

FIT_COPY = (
    "We suggest **{size}** in a **{coverage}** style{extra}. "
    "For close fit choose your measured size; for relaxed fit, consider one size up."
)


def _axis_distance(value: Optional[float], rng: Tuple[float, float]) -> float:
    if value is None:
        return 0.0
    low, high = rng
    if value < low:
        return low - value
    if value > high:
        return value - high
    return abs(value - (low + high) / 2) * IN_RANGE_PENALTY


def _in_range(value: Optional[float], rng: Tuple[float, float]) -> bool:
    return value is not None and rng[0] <= value <= rng[1]


def _score_entry(entry: SizeChartEntry, bust: Optional[float], waist: Optional[float], hip: Optional[float]) -> Tuple[int, float]:
    axes = ((bust, entry.bust), (waist, entry.waist), (hip, entry.hip))
    score = sum(1 for value, rng in axes if _in_range(value, rng))
    distance = sum(_axis_distance(value, rng) for value, rng in axes)
    return score, distance


def pick_from_chart(
    chart: SizeChart,
    bust: Optional[float] = None,
    waist: Optional[float] = None,
    hip: Optional[float] = None,
) -> Optional[str]:
    """Nearest-fit lookup of a bust/waist/hip triple in the chart.

    Each row scores one point per measurement inside its range. The highest score
    wins; equal scores go to the row with the smallest summed distance (distance
    outside a range, or a tenth of the distance to the midpoint inside it), and
    remaining ties go to the earlier row.
    """
    if bust is None and waist is None and hip is None:
        return None

    best: Optional[Tuple[str, int, float]] = None
    for entry in chart.entries:
        score, distance = _score_entry(entry, bust, waist, hip)
        if best is None or score > best[1] or (score == best[1] and distance < best[2]):
            best = (entry.label, score, distance)
    return best[0] if best else None


def size_by_height_weight(height_cm: Optional[float], weight_kg: Optional[float]) -> Optional[str]:
    if not height_cm or not weight_kg:
        return None
    height_m = height_cm / 100
    denom = height_m * height_m
    if not denom or not math.isfinite(denom):
        return None
    bmi = weight_kg / denom
    for bound, label in BMI_THRESHOLDS:
        if bmi < bound:
            return label
    return BMI_TOP_SIZE


CoverageRule = Tuple[Callable[[Preferences], bool], str]

# Evaluated top to bottom, first match wins
COVERAGE_RULES: List[CoverageRule] = [
    (lambda p: p.style_preference == "burkini", "burkini"),
    (lambda p: p.style_preference == "swimdress", "knee length"),
    (lambda p: p.style_preference == "rashguard", "one-piece + rash guard"),
    (lambda p: p.modesty == "high", "burkini"),
    (lambda p: p.activity in SWIM_ACTIVITIES and p.modesty == "medium", "knee length"),
    (lambda p: p.activity in SWIM_ACTIVITIES, "one-piece"),
    (lambda p: bool(p.tummy_control), "knee length"),
]
DEFAULT_COVERAGE = "knee length"


def choose_coverage(prefs: Preferences) -> str:
    for predicate, coverage in COVERAGE_RULES:
        if predicate(prefs):
            return coverage
    return DEFAULT_COVERAGE


def fit_hints(coverage: str, prefs: Preferences) -> List[str]:
    hints: List[str] = []
    if prefs.tummy_control:
        hints.append(HINT_TUMMY)
    if prefs.activity == "swim_class":
        hints.append(HINT_SHOULDER)
    if prefs.modesty == "high" or coverage == "burkini":
        hints.append(HINT_FULL)
    return hints


def fit_copy(size: str, coverage: str, hints: List[str]) -> str:
    extra = f" with {' & '.join(hints)}" if hints else ""
    return FIT_COPY.format(size=size, coverage=coverage, extra=extra)


class Recommender:
    def __init__(
        self,
        chart: SizeChart = CHART_CM,
        default_size: str = DEFAULT_SIZE,
        sink: AnalyticsSink | None = None,
    ) -> None:
        self.chart = chart
        self.default_size = default_size
        self.sink = sink

    def choose_size(self, m: NormalizedMeasurements) -> Tuple[str, str]:
        by_chart = pick_from_chart(self.chart, m.bust, m.waist, m.hip)
        if by_chart:
            return by_chart, "chart"
        by_hw = size_by_height_weight(m.height_cm, m.weight_kg)
        if by_hw:
            return by_hw, "height_weight"
        logger.info("size_default_applied", default=self.default_size)
        return self.default_size, "default"

    def evaluate(self, normalized: NormalizedRequest) -> RecommendationResult:
        size, source = self.choose_size(normalized.measurements)
        coverage = choose_coverage(normalized.preferences)
        hints = fit_hints(coverage, normalized.preferences)
        return RecommendationResult(
            size=size,
            coverage=coverage,
            fit_notes=fit_copy(size, coverage, hints),
            hints=hints,
            size_source=source,
        )

    def build_record(self, normalized: NormalizedRequest, result: RecommendationResult) -> AnalyticsRecord:
        m = normalized.measurements
        prefs = normalized.preferences

        def _cm(value: Optional[float]) -> Optional[float]:
            if value is None or self.chart.unit == "cm":
                return value
            return in_to_cm(value)

        return AnalyticsRecord(
            product_handle=normalized.product_handle,
            product_title=normalized.product_title,
            height_cm=m.height_cm,
            weight_kg=m.weight_kg,
            bust_cm=_cm(m.bust),
            waist_cm=_cm(m.waist),
            hip_cm=_cm(m.hip),
            bra_band=normalized.bra.band,
            bra_cup=normalized.bra.cup,
            unit_system=normalized.unit_system,
            activity=prefs.activity,
            modesty=prefs.modesty,
            tummy_control=prefs.tummy_control,
            style_preference=prefs.style_preference,
            recommended_size=result.size,
            recommended_style=result.coverage,
            fit_notes=result.fit_notes,
        )

    async def emit(self, normalized: NormalizedRequest, result: RecommendationResult) -> None:
        if self.sink is None:
            return
        try:
            await self.sink.write(self.build_record(normalized, result))
        except Exception as e:
            logger.warning("analytics_write_failed", error=str(e), error_type=type(e).__name__)

    async def recommend(self, payload: Dict[str, Any]) -> RecommendationResult:
        normalized = normalize_request(payload, chart_unit=self.chart.unit)
        result = self.evaluate(normalized)
        logger.info(
            "recommendation_computed",
            size=result.size,
            size_source=result.size_source,
            coverage=result.coverage,
            unit_system=normalized.unit_system,
        )
        await self.emit(normalized, result)
        return result
