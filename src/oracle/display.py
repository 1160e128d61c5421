# ABOUTME: Turns a prediction into the qualification-probability band shown to the candidate.
# ABOUTME: A failed qualifying paper overrides every score band.

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

from src.common.schemas import Flag, PredictionResult

# (score strictly above, probability, label, colour)
PROBABILITY_BANDS: Sequence[Tuple[float, int, str, str]] = (
    (105.0, 95, "SAFE ZONE", "green"),
    (98.0, 80, "LIKELY", "green"),
    (88.0, 55, "BORDERLINE", "yellow"),
    (75.0, 25, "AT RISK", "red"),
)
FLOOR_BAND = (10, "UNLIKELY", "red")


@dataclass(frozen=True)
class DisplayBand:
    probability: int
    label: str
    color: str

    @property
    def text(self) -> str:
        return f"{self.label} ({self.probability}%)"


def format_for_display(result: PredictionResult) -> DisplayBand:
    if Flag.CSAT_CRITICAL_FAIL.value in result.flags:
        return DisplayBand(probability=0, label="CSAT DISQUALIFIED", color="red")
    for threshold, probability, label, color in PROBABILITY_BANDS:
        if result.score > threshold:
            return DisplayBand(probability=probability, label=label, color=color)
    probability, label, color = FLOOR_BAND
    return DisplayBand(probability=probability, label=label, color=color)
