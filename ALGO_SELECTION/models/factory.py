# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Model Factory

Builds and fits learners by family name and task. Hyperparameters come from
CONFIG/models/<learner>.yaml (plus run overrides); data-dependent parameters
come from the family's pre-fit hook, evaluated on the rows of each fit.
"""


from typing import Dict, Any, Optional
import logging
import threading

import numpy as np
from sklearn.dummy import DummyClassifier
from sklearn.preprocessing import LabelEncoder

from CONFIG.config_loader import load_model_config
from CONFIG.logging_config_utils import get_backend_logging_config
from ALGO_SELECTION.common.determinism import rng_for
from ALGO_SELECTION.common.exceptions import ConfigError
from .model_wrapper import FittedLearner
from .registry import CLASSIFICATION, TASKS, LearnerSpec, ModelRegistry

logger = logging.getLogger(__name__)


class ModelFactory:
    """Factory for creating and fitting learners - Thread-safe Singleton pattern"""

    _instance = None
    _initialized = False
    _lock = threading.Lock()

    def __new__(cls):
        # Double-check locking pattern for thread safety
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(ModelFactory, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            with self._lock:
                if not self._initialized:
                    self.registry = ModelRegistry()
                    self._initialized = True

    def get_spec(self, learner: str, task: str) -> LearnerSpec:
        """Resolve a learner family, failing on unknown names or unsupported tasks."""
        if task not in TASKS:
            raise ConfigError(f"Unknown task '{task}', expected one of {TASKS}")
        spec = self.registry.get(learner)
        if spec is None:
            raise ConfigError(
                f"Unknown learner '{learner}', available: {self.registry.available()}",
                error_code="LEARNER_UNKNOWN",
            )
        if not spec.supports(task):
            raise ConfigError(
                f"Learner '{learner}' does not support {task} (supports {spec.tasks})",
                error_code="LEARNER_UNSUPPORTED",
            )
        return spec

    def supports(self, learner: str, task: str) -> bool:
        spec = self.registry.get(learner)
        return spec is not None and spec.supports(task)

    def resolve_params(self, spec: LearnerSpec, task: str, X: np.ndarray, seed: int,
                       overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Config hyperparameters + pre-fit hook output + seed + backend verbosity."""
        params = load_model_config(spec.name, task=task, overrides=overrides)
        if spec.prefit_hook is not None:
            params.update(spec.prefit_hook(X, rng_for(seed, spec.name, "prefit"), params))
        if spec.seed_param:
            params.setdefault(spec.seed_param, seed)
        if spec.verbosity_param:
            params.setdefault(spec.verbosity_param, get_backend_logging_config(spec.name).native_verbosity)
        return params

    def fit(self, learner: str, task: str, X: np.ndarray, y: np.ndarray, seed: int,
            overrides: Optional[Dict[str, Any]] = None) -> FittedLearner:
        """
        Fit a learner of the given family.

        Args:
            learner: Learner family name (see ModelRegistry)
            task: "classification" or "regression"
            X: Training features (n_samples, n_features)
            y: Solver labels (classification) or real targets (regression)
            seed: Seed for stochastic learners and pre-fit hooks
            overrides: Hyperparameter overrides

        Returns:
            FittedLearner with a uniform predict()
        """
        spec = self.get_spec(learner, task)
        X = np.asarray(X, dtype=float)
        y = np.asarray(y)

        if task == CLASSIFICATION:
            encoder = LabelEncoder().fit(y)
            y_fit = encoder.transform(y)
            if len(encoder.classes_) == 1:
                # Single class in the training rows: every prediction is that class
                logger.debug(f"{learner}: single training class '{encoder.classes_[0]}', constant predictor")
                model = DummyClassifier(strategy="most_frequent").fit(X, y_fit)
                return FittedLearner(model, learner, task, label_encoder=encoder)
        else:
            encoder = None
            y_fit = y.astype(float)

        params = self.resolve_params(spec, task, X, seed, overrides)
        model = spec.builders[task](**params)
        model.fit(X, y_fit)
        return FittedLearner(model, learner, task, label_encoder=encoder, params=params)
