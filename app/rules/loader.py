"""Routing ruleset files.

A ruleset is a YAML routing table under ``rulesets/``. Its SHA-256 is taken
over the raw file text and stored on every assessment routed with it, so a
routing decision can be traced back to the exact table that made it.
"""

import hashlib
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

RULESETS_DIR = Path(__file__).parent / "rulesets"

# Top-level keys every routing table declares
REQUIRED_KEYS = ("id", "version", "default_department", "rules")


def compute_ruleset_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def load_ruleset(
    filename: str,
    rulesets_dir: Path | None = None,
) -> tuple[dict[str, Any], str]:
    """Read a routing table and hash it.

    Returns:
        (parsed table, hex digest of the file text)

    Raises:
        FileNotFoundError: No such file in the rulesets directory
        ValueError: File is not a mapping with the routing table keys
    """
    filepath = (rulesets_dir or RULESETS_DIR) / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Ruleset not found: {filepath}")

    content = filepath.read_text(encoding="utf-8")
    ruleset = yaml.safe_load(content)
    if not isinstance(ruleset, dict):
        raise ValueError(f"Ruleset {filename} is not a mapping")
    missing = [key for key in REQUIRED_KEYS if key not in ruleset]
    if missing:
        raise ValueError(f"Ruleset {filename} is missing {', '.join(missing)}")

    ruleset_hash = compute_ruleset_hash(content)
    logger.info(f"Loaded routing ruleset {ruleset['id']} v{ruleset['version']} ({ruleset_hash[:12]})")
    return ruleset, ruleset_hash


class RulesetLoader:
    """Reads routing tables from one directory, keeping each after first read."""

    def __init__(self, rulesets_dir: Path | None = None) -> None:
        self.rulesets_dir = rulesets_dir or RULESETS_DIR
        self._cache: dict[str, tuple[dict[str, Any], str]] = {}

    def load(self, filename: str, use_cache: bool = True) -> tuple[dict[str, Any], str]:
        if not use_cache or filename not in self._cache:
            self._cache[filename] = load_ruleset(filename, self.rulesets_dir)
        return self._cache[filename]

    def clear_cache(self) -> None:
        self._cache.clear()

    def list_rulesets(self) -> list[str]:
        return sorted(f.name for f in self.rulesets_dir.glob("*.yaml"))
