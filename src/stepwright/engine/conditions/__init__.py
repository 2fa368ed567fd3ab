"""Guard condition parsing and evaluation.

Conditions gate steps (``<step if="...">``), actions (``<action if="...">``)
and checks (``<check if="...">``).
"""

from __future__ import annotations

from stepwright.engine.conditions.evaluator import ConditionEvaluator
from stepwright.engine.conditions.parser import (
    Comparison,
    ConditionNode,
    ConditionParser,
    Connective,
    FilePredicate,
    IsPredicate,
    LiteralPredicate,
    Negation,
    PredicateKind,
)

__all__: list[str] = [
    "Comparison",
    "ConditionEvaluator",
    "ConditionNode",
    "ConditionParser",
    "Connective",
    "FilePredicate",
    "IsPredicate",
    "LiteralPredicate",
    "Negation",
    "PredicateKind",
]
