# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Typed Configuration Schemas

Defines dataclasses for the pipeline configuration so that stages receive
validated, typed settings instead of raw YAML dictionaries.
"""

from dataclasses import dataclass, field, replace
from typing import List, Dict, Any, Optional

from ALGO_SELECTION.common.determinism import BASE_SEED
from ALGO_SELECTION.common.exceptions import ConfigError


VALID_STRATEGIES = ("all", "sffs", "sfbs", "ga", "ga2")
VALID_FAMILIES = ("classification", "regression", "pairwise_regression")
VALID_SCOPES = ("global", "per_fold")
VALID_EXECUTORS = ("process", "thread")


@dataclass
class GAConfig:
    """Evolutionary feature search settings (strategy 'ga')"""
    population_size: int = 10
    offspring_size: int = 5
    generations: int = 20
    crossover_rate: float = 0.5
    mutation_rate: float = 0.05
    initial_inclusion_probability: float = 0.5

    def __post_init__(self):
        if self.population_size < 2:
            raise ConfigError(
                f"GAConfig.population_size must be >= 2, got {self.population_size}",
                config_name="feature_selection_config",
            )
        if self.offspring_size < 1 or self.generations < 0:
            raise ConfigError(
                f"GAConfig needs offspring_size >= 1 and generations >= 0, "
                f"got {self.offspring_size}/{self.generations}",
                config_name="feature_selection_config",
            )
        for name in ("crossover_rate", "mutation_rate", "initial_inclusion_probability"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(
                    f"GAConfig.{name} must be within [0, 1], got {value}",
                    config_name="feature_selection_config",
                )

    def scaled(self, multiplier: int) -> "GAConfig":
        """Same search with population and offspring scaled (strategy 'ga2')."""
        return replace(
            self,
            population_size=self.population_size * multiplier,
            offspring_size=self.offspring_size * multiplier,
        )


@dataclass
class FeatureSelectionConfig:
    """Feature selection search configuration"""
    inner_cv_folds: int = 5
    min_improvement: float = 0.0
    max_features: Optional[int] = None
    ga: GAConfig = field(default_factory=GAConfig)
    ga2_population_multiplier: int = 10

    def __post_init__(self):
        if self.inner_cv_folds < 2:
            raise ConfigError(
                f"inner_cv_folds must be >= 2, got {self.inner_cv_folds}",
                config_name="feature_selection_config",
            )
        if self.min_improvement < 0:
            raise ConfigError(
                f"min_improvement must be >= 0, got {self.min_improvement}",
                config_name="feature_selection_config",
            )
        if self.max_features is not None and self.max_features < 1:
            raise ConfigError(
                f"max_features must be >= 1 if provided, got {self.max_features}",
                config_name="feature_selection_config",
            )

    @property
    def ga2(self) -> GAConfig:
        return self.ga.scaled(self.ga2_population_multiplier)


@dataclass
class ParallelConfig:
    """Worker pool configuration for LOOCV folds"""
    max_workers: Optional[int] = None
    executor: str = "process"
    threads_per_worker: int = 1

    def __post_init__(self):
        if self.executor not in VALID_EXECUTORS:
            raise ConfigError(
                f"Unknown executor '{self.executor}', expected one of {VALID_EXECUTORS}",
                config_name="threading_config",
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(
                f"max_workers must be >= 1 if provided, got {self.max_workers}",
                config_name="threading_config",
            )


@dataclass
class PipelineConfig:
    """Algorithm selection run configuration (what are we running?)"""
    base_seed: int = BASE_SEED
    dimensions: List[int] = field(default_factory=lambda: [2, 3, 5, 10])
    function_ids: List[int] = field(default_factory=lambda: list(range(1, 25)))
    # Empty list = every non-baseline column of the performance table
    solvers: List[str] = field(default_factory=list)
    baseline: str = "SBS"
    strategies: List[str] = field(default_factory=lambda: list(VALID_STRATEGIES))
    learners: List[str] = field(
        default_factory=lambda: ["decision_tree", "svm", "random_forest", "xgboost", "spline"]
    )
    families: List[str] = field(default_factory=lambda: list(VALID_FAMILIES))
    feature_cost_coefficient: float = 50.0
    par10_multiplier: float = 10.0
    feature_selection_scope: str = "global"
    min_distinct_values: int = 3
    feature_selection: FeatureSelectionConfig = field(default_factory=FeatureSelectionConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    # Per-learner hyperparameter overrides (applied on top of CONFIG/models/*.yaml)
    model_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        unknown = [s for s in self.strategies if s not in VALID_STRATEGIES]
        if unknown:
            raise ConfigError(
                f"Unknown feature selection strategies {unknown}, expected subset of {VALID_STRATEGIES}",
                config_name="pipeline_config",
            )
        unknown = [f for f in self.families if f not in VALID_FAMILIES]
        if unknown:
            raise ConfigError(
                f"Unknown selector families {unknown}, expected subset of {VALID_FAMILIES}",
                config_name="pipeline_config",
            )
        if self.feature_selection_scope not in VALID_SCOPES:
            raise ConfigError(
                f"feature_selection_scope must be one of {VALID_SCOPES}, got '{self.feature_selection_scope}'",
                config_name="pipeline_config",
            )
        if self.baseline in self.solvers:
            raise ConfigError(
                f"Baseline '{self.baseline}' cannot also be a candidate solver",
                config_name="pipeline_config",
            )
        if len(set(self.solvers)) != len(self.solvers):
            raise ConfigError("Candidate solver names must be unique", config_name="pipeline_config")
        if self.feature_cost_coefficient < 0:
            raise ConfigError(
                f"feature_cost_coefficient must be >= 0, got {self.feature_cost_coefficient}",
                config_name="pipeline_config",
            )
        if self.par10_multiplier <= 1:
            raise ConfigError(
                f"par10_multiplier must be > 1, got {self.par10_multiplier}",
                config_name="pipeline_config",
            )

    @classmethod
    def from_config(cls, **overrides: Any) -> "PipelineConfig":
        """
        Build the pipeline configuration from the CONFIG YAML files.

        Args:
            **overrides: Field values taking precedence over the files

        Returns:
            Validated PipelineConfig
        """
        from CONFIG.config_loader import get_cfg

        def pcfg(path: str, default: Any) -> Any:
            return get_cfg(f"pipeline.{path}", default=default, config_name="pipeline_config")

        def fcfg(path: str, default: Any) -> Any:
            return get_cfg(f"feature_selection.{path}", default=default,
                           config_name="feature_selection_config")

        def tcfg(path: str, default: Any) -> Any:
            return get_cfg(f"threading.{path}", default=default, config_name="threading_config")

        ga = GAConfig(
            population_size=fcfg("ga.population_size", 10),
            offspring_size=fcfg("ga.offspring_size", 5),
            generations=fcfg("ga.generations", 20),
            crossover_rate=fcfg("ga.crossover_rate", 0.5),
            mutation_rate=fcfg("ga.mutation_rate", 0.05),
            initial_inclusion_probability=fcfg("ga.initial_inclusion_probability", 0.5),
        )
        selection = FeatureSelectionConfig(
            inner_cv_folds=fcfg("inner_cv_folds", 5),
            min_improvement=fcfg("sequential.min_improvement", 0.0),
            max_features=fcfg("sequential.max_features", None),
            ga=ga,
            ga2_population_multiplier=fcfg("ga2.population_multiplier", 10),
        )
        parallel = ParallelConfig(
            max_workers=tcfg("parallel.max_workers", None),
            executor=tcfg("parallel.executor", "process"),
            threads_per_worker=tcfg("blas.threads_per_worker", 1),
        )

        values: Dict[str, Any] = dict(
            base_seed=pcfg("determinism.base_seed", BASE_SEED),
            dimensions=list(pcfg("instances.dimensions", [2, 3, 5, 10])),
            function_ids=list(pcfg("instances.function_ids", list(range(1, 25)))),
            solvers=list(pcfg("solvers.candidates", []) or []),
            baseline=pcfg("solvers.baseline", "SBS"),
            strategies=list(pcfg("selection.strategies", list(VALID_STRATEGIES))),
            learners=list(pcfg("selection.learners",
                               ["decision_tree", "svm", "random_forest", "xgboost", "spline"])),
            families=list(pcfg("selection.families", list(VALID_FAMILIES))),
            feature_cost_coefficient=float(pcfg("scoring.feature_cost_coefficient", 50)),
            par10_multiplier=float(pcfg("scoring.par10_multiplier", 10)),
            feature_selection_scope=pcfg("selection.feature_selection_scope", "global"),
            min_distinct_values=pcfg("features.min_distinct_values", 3),
            feature_selection=selection,
            parallel=parallel,
        )
        values.update(overrides)
        return cls(**values)
