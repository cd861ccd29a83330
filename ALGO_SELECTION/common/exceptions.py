# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Algorithm Selection Exception Taxonomy

Structured exceptions for fail-closed error handling in the selection pipeline.
All exceptions carry a structured payload so that failed combinations can be
reported by name together with the specific failure reason.
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass, field


@dataclass
class AlgoSelectionError(Exception):
    """
    Base exception for all pipeline errors.

    All exceptions carry structured payload for auditability:
    - stage: Pipeline stage (SCORING, FEATURE_SELECTION, CROSS_VALIDATION, AGGREGATION)
    - error_code: Machine-readable error code
    - context: Additional context dict
    """
    message: str
    stage: Optional[str] = None
    error_code: str = "ALGOSEL_ERROR"
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Initialize base exception with message."""
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to structured dict for logging/audit."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "stage": self.stage,
            "error_code": self.error_code,
            "context": self.context
        }


@dataclass
class ConfigError(AlgoSelectionError, ValueError):
    """
    Configuration error: missing, invalid, or conflicting config.

    Error codes:
    - CONFIG_INVALID: Config value fails validation
    - LEARNER_UNKNOWN: Learner family not registered
    - LEARNER_UNSUPPORTED: Learner family does not support the requested task
    """
    config_name: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.error_code == "ALGOSEL_ERROR":
            self.error_code = "CONFIG_INVALID"
        if self.config_name:
            self.context["config_name"] = self.config_name


@dataclass
class DataIntegrityError(AlgoSelectionError):
    """
    Data integrity error: key mismatch, unexpected NaNs/infs, invalid values.

    Error codes:
    - INSTANCE_KEY_MISMATCH: Feature and performance tables cover different instances
    - BASELINE_MISSING: Reserved baseline solver column is absent
    - DATA_NAN_INF: Unexpected NaN or Inf values
    - DATA_INVALID_VALUE: Value fails validation
    - DATA_DUPLICATE_KEY: Instance appears more than once
    - DATA_MISSING_REQUIRED: Required column/data missing
    """
    table: Optional[str] = None
    column: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.error_code == "ALGOSEL_ERROR":
            self.error_code = "DATA_INTEGRITY_ERROR"
        if self.table:
            self.context["table"] = self.table
        if self.column:
            self.context["column"] = self.column


@dataclass
class LeakageError(AlgoSelectionError):
    """
    Leakage detection error: the held-out instance reached its own fold's training data.

    Error codes:
    - LEAKAGE_HELD_OUT: Held-out instance present in the training split
    """
    instance: Optional[str] = None
    combination: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.error_code == "ALGOSEL_ERROR":
            self.error_code = "LEAKAGE_HELD_OUT"
        if self.instance:
            self.context["instance"] = self.instance
        if self.combination:
            self.context["combination"] = self.combination


@dataclass
class FeatureSelectionError(AlgoSelectionError):
    """
    The wrapped learner failed while scoring candidate feature subsets.

    Error codes:
    - FEATURE_SELECTION_FAILED: Inner cross-validation fit/predict raised
    - FEATURE_SELECTION_TOO_FEW_ROWS: Not enough instances for inner cross-validation
    """
    learner: Optional[str] = None
    strategy: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.error_code == "ALGOSEL_ERROR":
            self.error_code = "FEATURE_SELECTION_FAILED"
        if self.learner:
            self.context["learner"] = self.learner
        if self.strategy:
            self.context["strategy"] = self.strategy


@dataclass
class FoldError(AlgoSelectionError):
    """
    A LOOCV fold failed while fitting or predicting.

    Aborts the metric of the whole combination; never averaged away.

    Error codes:
    - FOLD_FIT_FAILED: Model fit/predict raised inside the fold
    """
    combination: Optional[str] = None
    instance: Optional[str] = None
    cause: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.error_code == "ALGOSEL_ERROR":
            self.error_code = "FOLD_FIT_FAILED"
        if self.combination:
            self.context["combination"] = self.combination
        if self.instance:
            self.context["instance"] = self.instance
        if self.cause:
            self.context["cause"] = self.cause


@dataclass
class ResultContractError(AlgoSelectionError):
    """
    Result table violates the output contract.

    Error codes:
    - RESULT_ROW_COUNT: Outcome table does not hold exactly one row per instance
    - RESULT_DUPLICATE: Combination reported twice
    """
    combination: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if self.error_code == "ALGOSEL_ERROR":
            self.error_code = "RESULT_CONTRACT_ERROR"
        if self.combination:
            self.context["combination"] = self.combination
