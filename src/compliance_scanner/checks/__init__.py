"""
Built-in compliance rules

Rules only read the configuration snapshot captured during discovery, so
evaluating them needs no further AWS calls.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from ..core.evaluator import RuleContext, RuleEvaluator
from ..core.framework import CloudResource, RuleResult
from ..core.registry import RuleRegistry

logger = logging.getLogger(__name__)


class ComplianceRule(ABC):
    """Abstract base class for compliance rules"""

    def __init__(self):
        self.rule_id: str = ""
        self.title: str = ""
        self.description: str = ""
        self.severity: str = "medium"
        self.frameworks: List[str] = []
        self.service: str = ""
        self.resource_types: List[str] = []
        self.recommendation: str = ""
        self.version: str = "1.0.0"

    def applies_to(self, resource: CloudResource) -> bool:
        return resource.type in self.resource_types

    @abstractmethod
    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        """Return (compliant, evidence) for one resource"""

    def evaluate(self, resource: CloudResource,
                 frameworks: Optional[List[str]] = None) -> List[RuleResult]:
        """One result per framework this rule maps to"""
        selected = [
            framework for framework in self.frameworks
            if not frameworks or framework.upper() in {f.upper() for f in frameworks}
        ]
        if not selected:
            return []

        started = time.perf_counter()
        compliant, evidence = self.check(resource)
        elapsed = round((time.perf_counter() - started) * 1000, 3)

        return [
            RuleResult(
                rule_id=self.rule_id,
                resource_arn=resource.arn,
                compliant=compliant,
                severity=self.severity,
                framework=framework,
                resource_type=resource.type,
                service=resource.service,
                region=resource.region,
                account_id=resource.account_id,
                title=self.title,
                description=self.description,
                evidence=evidence,
                recommendation="" if compliant else self.recommendation,
                rule_version=self.version,
                execution_time=elapsed,
            )
            for framework in selected
        ]


class BuiltinRuleEvaluator(RuleEvaluator):
    """In-process evaluator backed by the rule registry"""

    def __init__(self, registry: Optional[RuleRegistry] = None):
        self.registry = registry or RuleRegistry()

    async def execute_rules(self, resources: List[CloudResource],
                            context: RuleContext) -> List[RuleResult]:
        rules = self.registry.get_all_rules()
        if context.services:
            rules = [rule for rule in rules if rule.service in context.services]

        results: List[RuleResult] = []
        for resource in resources:
            for rule in rules:
                if rule.applies_to(resource):
                    results.extend(rule.evaluate(resource, context.frameworks))

        logger.info(
            f"Evaluated {len(rules)} rules against {len(resources)} resources "
            f"for scan {context.scan_id}: {len(results)} results"
        )
        return results
