"""Routing rule and ruleset data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ConditionOperator(str, Enum):
    """Operators for rule conditions."""
    EQUALS = "=="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    IN = "in"
    IS_TRUE = "is_true"
    IS_NULL = "is_null"


def get_fact_value(facts: dict[str, Any], path: str) -> Any:
    """Get value from nested facts using dot notation."""
    value: Any = facts
    for key in path.split("."):
        if isinstance(value, dict):
            value = value.get(key)
        else:
            return None
    return value


@dataclass
class Condition:
    """A single condition in a rule."""
    fact: str
    operator: ConditionOperator
    value: Any = None

    def evaluate(self, facts: dict[str, Any]) -> bool:
        """Evaluate this condition against the facts."""
        actual = get_fact_value(facts, self.fact)
        op = self.operator
        expected = self.value

        if op == ConditionOperator.IS_NULL:
            return actual is None
        if op == ConditionOperator.IS_TRUE:
            return actual is True

        # Missing facts never satisfy a comparison
        if actual is None:
            return False

        try:
            if op == ConditionOperator.EQUALS:
                return actual == expected
            elif op == ConditionOperator.NOT_EQUALS:
                return actual != expected
            elif op == ConditionOperator.GREATER_THAN:
                return actual > expected
            elif op == ConditionOperator.GREATER_THAN_OR_EQUAL:
                return actual >= expected
            elif op == ConditionOperator.LESS_THAN:
                return actual < expected
            elif op == ConditionOperator.LESS_THAN_OR_EQUAL:
                return actual <= expected
            elif op == ConditionOperator.IN:
                return actual in expected
        except (TypeError, ValueError):
            return False

        return False

    def describe(self, facts: dict[str, Any]) -> str:
        actual = get_fact_value(facts, self.fact)
        return f"{self.fact} {self.operator.value} {self.value} (actual: {actual})"


@dataclass
class ConditionGroup:
    """Conditions joined with AND ("all") or OR ("any"). Groups may nest."""
    mode: str
    items: list[Union[Condition, "ConditionGroup"]]

    def evaluate(self, facts: dict[str, Any]) -> bool:
        results = (item.evaluate(facts) for item in self.items)
        if self.mode == "all":
            return all(results)
        return any(results)

    def matched(self, facts: dict[str, Any]) -> list[Condition]:
        """Leaf conditions that held, for explanations."""
        found: list[Condition] = []
        for item in self.items:
            if isinstance(item, ConditionGroup):
                if item.evaluate(facts):
                    found.extend(item.matched(facts))
            elif item.evaluate(facts):
                found.append(item)
        return found

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConditionGroup":
        if "all" in data:
            mode = "all"
        elif "any" in data:
            mode = "any"
        else:
            raise ValueError(f"Condition group needs 'all' or 'any': {data}")

        items: list[Condition | ConditionGroup] = []
        for raw in data[mode]:
            if "all" in raw or "any" in raw:
                items.append(cls.from_dict(raw))
            else:
                items.append(Condition(
                    fact=raw["fact"],
                    operator=ConditionOperator(raw.get("op", "==")),
                    value=raw.get("value"),
                ))
        return cls(mode=mode, items=items)


@dataclass
class RoutingRule:
    """A routing rule: when its conditions hold, route to a department."""
    id: str
    name: str
    priority: int  # Lower = higher priority
    when: ConditionGroup
    department: str
    description: str = ""
    enabled: bool = True

    def evaluate(self, facts: dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        return self.when.evaluate(facts)

    def get_explanation(self, facts: dict[str, Any]) -> str:
        """Generate explanation for why this rule matched."""
        matched = "; ".join(c.describe(facts) for c in self.when.matched(facts))
        return f"Rule '{self.name}' matched: {matched}"


@dataclass
class DepartmentSpec:
    """Department declared by a routing ruleset, used for seeding."""
    code: str
    name: str
    average_treatment_minutes: int = 20
    max_capacity: int = 50


@dataclass
class RoutingTable:
    """A versioned set of routing rules."""
    id: str
    name: str
    version: str
    default_department: str
    description: str = ""
    rules: list[RoutingRule] = field(default_factory=list)
    departments: list[DepartmentSpec] = field(default_factory=list)

    def get_sorted_rules(self) -> list[RoutingRule]:
        """Get enabled rules sorted by priority (ascending)."""
        return sorted(
            [r for r in self.rules if r.enabled],
            key=lambda r: r.priority
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoutingTable":
        """Create a RoutingTable from its YAML representation."""
        rules = [
            RoutingRule(
                id=rule_data["id"],
                name=rule_data["name"],
                priority=rule_data["priority"],
                when=ConditionGroup.from_dict(rule_data["when"]),
                department=rule_data["then"]["department"],
                description=rule_data.get("description", ""),
                enabled=rule_data.get("enabled", True),
            )
            for rule_data in data.get("rules", [])
        ]

        departments = [
            DepartmentSpec(
                code=dept["code"],
                name=dept["name"],
                average_treatment_minutes=dept.get("average_treatment_minutes", 20),
                max_capacity=dept.get("max_capacity", 50),
            )
            for dept in data.get("departments", [])
        ]

        return cls(
            id=data["id"],
            name=data["name"],
            version=str(data["version"]),
            default_department=data["default_department"],
            description=data.get("description", ""),
            rules=rules,
            departments=departments,
        )
