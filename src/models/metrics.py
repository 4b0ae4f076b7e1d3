"""Historical accuracy figures feeding calibration."""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


class CalibrationBin(BaseModel):
    """Observed accuracy for overall scores in [low, high)."""

    low: float = Field(ge=0, le=1)
    high: float = Field(ge=0, le=1)
    accuracy: float = Field(ge=0, le=1)

    @property
    def midpoint(self) -> float:
        return (self.low + self.high) / 2


def default_calibration_bins() -> List[CalibrationBin]:
    return [
        CalibrationBin(low=0.0, high=0.2, accuracy=0.15),
        CalibrationBin(low=0.2, high=0.4, accuracy=0.35),
        CalibrationBin(low=0.4, high=0.6, accuracy=0.55),
        CalibrationBin(low=0.6, high=0.8, accuracy=0.72),
        CalibrationBin(low=0.8, high=1.0, accuracy=0.88),
    ]


class PerformanceMetrics(BaseModel):
    classification_accuracy: float = Field(default=0.85, ge=0, le=1)
    category_accuracy: Dict[str, float] = Field(
        default_factory=lambda: {
            "technical": 0.90,
            "billing": 0.88,
            "account": 0.92,
            "general": 0.75,
            "feature_request": 0.80,
        }
    )
    retrieval_accuracy: float = Field(default=0.80, ge=0, le=1)
    strategy_accuracy: Dict[str, float] = Field(
        default_factory=lambda: {
            "template": 0.90,
            "generative": 0.82,
            "hybrid": 0.82,
            "fallback": 0.82,
        }
    )
    calibration_bins: List[CalibrationBin] = Field(default_factory=default_calibration_bins)
    total_predictions: int = Field(default=0, ge=0)
    correct_predictions: int = Field(default=0, ge=0)
    partial_predictions: int = Field(default=0, ge=0)
    incorrect_predictions: int = Field(default=0, ge=0)

    def category_accuracy_for(self, category: str) -> float:
        return self.category_accuracy.get(category, self.classification_accuracy)

    def strategy_accuracy_for(self, strategy: str) -> float:
        return self.strategy_accuracy.get(strategy, self.classification_accuracy)

    def bin_index(self, score: float) -> int:
        """Index of the bin holding score; the last bin includes its upper edge."""
        last = len(self.calibration_bins) - 1
        for index, calibration_bin in enumerate(self.calibration_bins):
            if calibration_bin.low <= score < calibration_bin.high:
                return index
        return last if score >= self.calibration_bins[last].low else 0
