"""Deterministic department routing engine.

Routes a triaged patient to a department from symptom flags and vitals.
All decisions are:
- Deterministic (same input = same output)
- Explainable (records the rule that fired and why)
- Auditable (records ruleset version and hash)

NO AI/ML is used for routing.
"""

from dataclasses import dataclass, field
from typing import Any

from app.rules.loader import RulesetLoader
from app.rules.models import DepartmentSpec, RoutingTable

DEFAULT_RULE_ID = "default"


@dataclass
class RoutingDecision:
    """Result of routing one assessment."""

    department_code: str
    rule_id: str
    explanation: str
    ruleset_version: str
    ruleset_hash: str
    evaluation_context: dict[str, Any] = field(default_factory=dict)


def build_routing_facts(
    vitals: dict[str, Any],
    symptoms: dict[str, bool],
    age_years: int | None = None,
) -> dict[str, Any]:
    """Shape intake data into the fact tree the routing rules address."""
    return {
        "vitals": dict(vitals),
        "symptoms": dict(symptoms),
        "patient": {"age_years": age_years},
    }


class DepartmentRouter:
    """Evaluates the routing table, first match wins."""

    def __init__(
        self,
        ruleset_filename: str = "department-routing-v1.0.0.yaml",
        loader: RulesetLoader | None = None,
    ) -> None:
        self.ruleset_filename = ruleset_filename
        self.loader = loader or RulesetLoader()
        self._table: RoutingTable | None = None
        self._hash: str | None = None

    def load_ruleset(self) -> None:
        """Load the configured ruleset."""
        raw, self._hash = self.loader.load(self.ruleset_filename)
        self._table = RoutingTable.from_dict(raw)

    @property
    def table(self) -> RoutingTable:
        if self._table is None:
            self.load_ruleset()
        return self._table  # type: ignore

    @property
    def ruleset_hash(self) -> str:
        if self._hash is None:
            self.load_ruleset()
        return self._hash  # type: ignore

    @property
    def departments(self) -> list[DepartmentSpec]:
        """Departments the ruleset can route to."""
        return list(self.table.departments)

    def route(self, facts: dict[str, Any]) -> RoutingDecision:
        """Pick the target department for the given facts.

        Args:
            facts: Fact tree from build_routing_facts()

        Returns:
            RoutingDecision naming the department code and the rule that fired
        """
        rules = self.table.get_sorted_rules()

        for rule in rules:
            if rule.evaluate(facts):
                return RoutingDecision(
                    department_code=rule.department,
                    rule_id=rule.id,
                    explanation=rule.get_explanation(facts),
                    ruleset_version=self.table.version,
                    ruleset_hash=self.ruleset_hash,
                    evaluation_context={"total_rules_evaluated": len(rules)},
                )

        return RoutingDecision(
            department_code=self.table.default_department,
            rule_id=DEFAULT_RULE_ID,
            explanation="No routing rule matched; using default department",
            ruleset_version=self.table.version,
            ruleset_hash=self.ruleset_hash,
            evaluation_context={"total_rules_evaluated": len(rules)},
        )
