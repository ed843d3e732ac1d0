"""Aggregate confidence: CONF = sum(|w_k| * c_k) / sum(|w_k|)."""

from __future__ import annotations

import numpy as np


class ConfidenceScorer:
    def score(self, weights: np.ndarray, confidences: np.ndarray) -> float:
        """Weighted mean of per-factor confidences; zero-weight factors drop out.

        Factors missing from the candidate must be passed with confidence 0 so that
        every defaulted factor can only lower the result.
        """
        magnitudes = np.abs(weights)
        total = float(magnitudes.sum())
        if total == 0.0:
            return 0.0
        conf = float((magnitudes * confidences).sum()) / total
        return max(0.0, min(1.0, conf))
