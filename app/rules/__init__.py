"""Deterministic department routing.

Routing decisions come from a versioned YAML decision table; no AI/ML is used.
"""

from app.rules.engine import DepartmentRouter, RoutingDecision, build_routing_facts
from app.rules.loader import RulesetLoader, compute_ruleset_hash, load_ruleset

__all__ = [
    "RulesetLoader",
    "load_ruleset",
    "compute_ruleset_hash",
    "DepartmentRouter",
    "RoutingDecision",
    "build_routing_facts",
]
