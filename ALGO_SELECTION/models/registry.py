# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Learner Registry

Registry of interchangeable learner families. Each family is a LearnerSpec:
per-task estimator builders plus an optional pre-fit hook that derives
data-dependent hyperparameters (e.g. the RBF kernel width) from the
training rows of the current fit.
"""


from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import logging
import threading

import numpy as np

logger = logging.getLogger(__name__)

CLASSIFICATION = "classification"
REGRESSION = "regression"
TASKS = (CLASSIFICATION, REGRESSION)

# (X_train, rng, learner config) -> extra estimator params
PrefitHook = Callable[[np.ndarray, np.random.Generator, Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class LearnerSpec:
    """A learner family with a uniform fit/predict capability."""
    name: str
    builders: Dict[str, Callable[..., Any]]
    prefit_hook: Optional[PrefitHook] = None
    # Constructor argument receiving the fold seed (None = deterministic learner)
    seed_param: Optional[str] = "random_state"
    # Constructor argument receiving the backend verbosity from CONFIG/core/logging.yaml
    verbosity_param: Optional[str] = None
    description: str = ""

    def supports(self, task: str) -> bool:
        return task in self.builders

    @property
    def tasks(self) -> List[str]:
        return [t for t in TASKS if t in self.builders]


def _svm_kernel_width(X: np.ndarray, rng: np.random.Generator, config: Dict[str, Any]) -> Dict[str, Any]:
    from CONFIG.config_loader import get_cfg
    from .kernel_width import estimate_gamma

    fraction = get_cfg("kernel_width.sample_fraction", default=0.5, config_name="svm")
    return {"gamma": estimate_gamma(X, rng, sample_fraction=fraction)}


def _build_spline_regressor(n_knots: int = 5, degree: int = 3, alpha: float = 1.0, **kwargs):
    """Additive regression spline: per-feature B-spline basis followed by ridge."""
    from sklearn.linear_model import Ridge
    from sklearn.pipeline import make_pipeline
    from sklearn.preprocessing import SplineTransformer

    return make_pipeline(
        SplineTransformer(n_knots=n_knots, degree=degree, extrapolation="linear"),
        Ridge(alpha=alpha, **kwargs),
    )


class ModelRegistry:
    """Registry for learner families - Thread-safe Singleton pattern"""

    _instance = None
    _initialized = False
    # Class-level lock for thread-safe singleton
    _lock = threading.Lock()

    def __new__(cls):
        # Double-check locking pattern for thread safety
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(ModelRegistry, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            with self._lock:
                if not self._initialized:
                    self._learners: Dict[str, LearnerSpec] = {}
                    self._register_default_learners()
                    self._initialized = True

    def register(self, spec: LearnerSpec, replace: bool = False) -> None:
        """Register a learner family."""
        with self._lock:
            if spec.name in self._learners and not replace:
                raise ValueError(f"Learner '{spec.name}' is already registered")
            self._learners[spec.name] = spec
        logger.debug(f"Registered learner {spec.name} ({', '.join(spec.tasks)})")

    def unregister(self, name: str) -> None:
        with self._lock:
            self._learners.pop(name, None)

    def get(self, name: str) -> Optional[LearnerSpec]:
        return self._learners.get(name)

    def available(self, task: Optional[str] = None) -> List[str]:
        """Registered learner names, optionally only those supporting `task`."""
        return [n for n, s in self._learners.items() if task is None or s.supports(task)]

    def _register_default_learners(self):
        """Register default learner families"""
        self._register_sklearn_learners()
        self._register_xgboost_learners()
        self._register_lightgbm_learners()

    def _register_sklearn_learners(self):
        """Register scikit-learn learners"""
        from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
        from sklearn.svm import SVC, SVR
        from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

        self._learners["decision_tree"] = LearnerSpec(
            name="decision_tree",
            builders={CLASSIFICATION: DecisionTreeClassifier, REGRESSION: DecisionTreeRegressor},
            description="CART decision tree",
        )
        self._learners["svm"] = LearnerSpec(
            name="svm",
            builders={CLASSIFICATION: SVC, REGRESSION: SVR},
            prefit_hook=_svm_kernel_width,
            seed_param=None,
            description="RBF kernel machine, gamma estimated per fit",
        )
        self._learners["random_forest"] = LearnerSpec(
            name="random_forest",
            builders={CLASSIFICATION: RandomForestClassifier, REGRESSION: RandomForestRegressor},
            description="Random forest ensemble",
        )
        self._learners["spline"] = LearnerSpec(
            name="spline",
            builders={REGRESSION: _build_spline_regressor},
            seed_param=None,
            description="Additive regression spline (regression only)",
        )

    def _register_xgboost_learners(self):
        """Register XGBoost boosted trees"""
        import xgboost as xgb

        self._learners["xgboost"] = LearnerSpec(
            name="xgboost",
            builders={CLASSIFICATION: xgb.XGBClassifier, REGRESSION: xgb.XGBRegressor},
            verbosity_param="verbosity",
            description="Gradient boosted trees (XGBoost)",
        )

    def _register_lightgbm_learners(self):
        """Register LightGBM boosted trees"""
        import lightgbm as lgb

        self._learners["lightgbm"] = LearnerSpec(
            name="lightgbm",
            builders={CLASSIFICATION: lgb.LGBMClassifier, REGRESSION: lgb.LGBMRegressor},
            verbosity_param="verbose",
            description="Gradient boosted trees (LightGBM)",
        )
