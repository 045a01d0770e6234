"""
Rule evaluator interface

The orchestrator only depends on this abstraction, so rules can be evaluated
in-process, in a subprocess or by a remote service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from .framework import CloudResource, RuleResult


@dataclass
class RuleContext:
    tenant_id: str
    scan_id: str
    frameworks: List[str] = field(default_factory=list)
    services: List[str] = field(default_factory=list)


class RuleEvaluator(ABC):
    """Decides whether resource configurations satisfy compliance rules"""

    @abstractmethod
    async def execute_rules(self, resources: List[CloudResource],
                            context: RuleContext) -> List[RuleResult]:
        """Evaluate every applicable rule and return pass/fail results"""
