from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


Range = Tuple[float, float]


class SizeChartEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    bust: Range
    waist: Range
    hip: Range


class BraSize(BaseModel):
    band: Optional[int] = None
    cup: Optional[str] = None


class NormalizedMeasurements(BaseModel):
    """Bust/waist/hip in the chart's native unit, height in cm, weight in kg."""

    bust: Optional[float] = None
    waist: Optional[float] = None
    hip: Optional[float] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None


class Preferences(BaseModel):
    activity: Optional[str] = None
    modesty: Optional[str] = None
    tummy_control: Optional[bool] = None
    style_preference: Optional[str] = None


class NormalizedRequest(BaseModel):
    unit_system: str = "metric"
    measurements: NormalizedMeasurements = Field(default_factory=NormalizedMeasurements)
    bra: BraSize = Field(default_factory=BraSize)
    preferences: Preferences = Field(default_factory=Preferences)
    product_handle: Optional[str] = None
    product_title: Optional[str] = None


class RecommendationResult(BaseModel):
    size: str
    coverage: str
    fit_notes: str
    hints: List[str] = Field(default_factory=list)
    size_source: str = "chart"  # chart | height_weight | default


class AnalyticsRecord(BaseModel):
    """One row of the size quiz analytics table. Circumferences are always cm."""

    product_handle: Optional[str] = None
    product_title: Optional[str] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    bust_cm: Optional[float] = None
    waist_cm: Optional[float] = None
    hip_cm: Optional[float] = None
    bra_band: Optional[int] = None
    bra_cup: Optional[str] = None
    unit_system: str
    activity: Optional[str] = None
    modesty: Optional[str] = None
    tummy_control: Optional[bool] = None
    style_preference: Optional[str] = None
    recommended_size: str
    recommended_style: str
    fit_notes: str


class RecommendResponse(BaseModel):
    ok: bool = True
    size: str
    coverage: str
    fitNotes: str
