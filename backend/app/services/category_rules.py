"""Category compatibility rules used by the similarity calculator.

Two separate lookup tables keyed by lowercased category name:

- ``incompatible``: verticals that must never be shown as related. Checked
  first as a hard gate.
- ``compatible``: adjacent verticals that earn a partial category match.

Rules ship as ``app/data/category_rules.json`` and can be replaced with
``CATEGORY_RULES_PATH``.

Usage:
    from app.services.category_rules import get_category_rules

    rules = get_category_rules()
    rules.is_incompatible("Restaurant", "Clothing")  # True
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Iterable

from app.config import get_settings

logger = logging.getLogger(__name__)

_DEFAULT_RULES_PATH = Path(__file__).parent.parent / "data" / "category_rules.json"
_rules: "CategoryRules | None" = None


def _normalize(name: str | None) -> str:
    return (name or "").strip().lower()


def _build_table(raw: Mapping[str, Iterable[str]]) -> dict[str, frozenset[str]]:
    return {_normalize(key): frozenset(_normalize(v) for v in values) for key, values in raw.items()}


@dataclass(frozen=True)
class CategoryRules:
    incompatible: dict[str, frozenset[str]] = field(default_factory=dict)
    compatible: dict[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Iterable[str]]]) -> "CategoryRules":
        return cls(
            incompatible=_build_table(data.get("incompatible", {})),
            compatible=_build_table(data.get("compatible", {})),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "CategoryRules":
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def _listed(self, table: dict[str, frozenset[str]], a: str | None, b: str | None) -> bool:
        a, b = _normalize(a), _normalize(b)
        if not a or not b:
            return False
        return b in table.get(a, ()) or a in table.get(b, ())

    def is_incompatible(self, a: str | None, b: str | None) -> bool:
        """True if either category lists the other as incompatible."""
        return self._listed(self.incompatible, a, b)

    def is_compatible(self, a: str | None, b: str | None) -> bool:
        """True if either category lists the other as compatible."""
        return self._listed(self.compatible, a, b)

    def compatible_with(self, name: str | None) -> set[str]:
        """Every category name compatible with ``name``, listed in either direction."""
        key = _normalize(name)
        if not key:
            return set()
        names = set(self.compatible.get(key, ()))
        names.update(other for other, values in self.compatible.items() if key in values)
        names.discard(key)
        return names


def load_category_rules(path: str | Path | None = None) -> CategoryRules:
    """Load rules from an explicit path, the configured override, or the bundled file."""
    path = path or get_settings().category_rules_path or _DEFAULT_RULES_PATH
    rules = CategoryRules.from_file(path)
    logger.info(
        "Loaded category rules from %s (%d incompatible keys, %d compatible keys)",
        path, len(rules.incompatible), len(rules.compatible),
    )
    return rules


def get_category_rules() -> CategoryRules:
    """Lazy-load the process-wide rules."""
    global _rules
    if _rules is None:
        _rules = load_category_rules()
    return _rules
