from .saturation_scorer import (
    SaturationWeights, SaturationResult, DEFAULT_WEIGHTS, score_saturation, score_session
)

__all__ = ["SaturationWeights", "SaturationResult", "DEFAULT_WEIGHTS", "score_saturation", "score_session"]
