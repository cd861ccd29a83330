# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Fitted learner wrapper giving every learner family the same predict contract.
"""


import numpy as np
from typing import Any, Dict, Optional
import logging

from sklearn.preprocessing import LabelEncoder

logger = logging.getLogger(__name__)


class FittedLearner:
    """A fitted estimator plus what is needed to map its output back to our labels."""

    def __init__(self, model: Any, learner: str, task: str,
                 label_encoder: Optional[LabelEncoder] = None,
                 params: Optional[Dict[str, Any]] = None):
        self.model = model
        self.learner = learner
        self.task = task
        self.label_encoder = label_encoder
        self.params = params or {}

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Solver labels (classification) or real values (regression), one per row."""
        X = np.atleast_2d(np.asarray(X, dtype=float))
        pred = np.asarray(self.model.predict(X))
        if self.label_encoder is not None:
            return self.label_encoder.inverse_transform(pred.astype(int).ravel())
        return pred.astype(float).ravel()

    def predict_one(self, row: np.ndarray) -> Any:
        """Prediction for a single feature row."""
        return self.predict(np.asarray(row, dtype=float).reshape(1, -1))[0]

    def __repr__(self) -> str:
        return f"FittedLearner({self.learner}, {self.task}, {type(self.model).__name__})"
