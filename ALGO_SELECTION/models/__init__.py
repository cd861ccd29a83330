# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Model Components

Factory and registry for the interchangeable learner families.
"""


from .factory import ModelFactory
from .model_wrapper import FittedLearner
from .registry import CLASSIFICATION, REGRESSION, LearnerSpec, ModelRegistry

__all__ = [
    'ModelFactory',
    'ModelRegistry',
    'LearnerSpec',
    'FittedLearner',
    'CLASSIFICATION',
    'REGRESSION',
]
