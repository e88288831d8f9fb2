"""
rule_loader.py
---------------
Builds TransactionRule objects from plain records (dicts) or a YAML file.

Record layout (camelCase keys are accepted alongside snake_case ones):

    - id: rule-amazon
      name: Amazon shopping
      enabled: true
      logic: and
      conditions:
        - {field: merchant, operator: contains, value: amazon}
        - {field: amount, operator: greaterThan, value: 50}
      actions:
        - {type: setCategory, value: Shopping}

Loading only checks structure (lists where lists are expected, mappings
where mappings are expected). Whether a rule makes sense is decided by
RuleEngine.validate().
"""

import logging
import os
import yaml
from typing import Any, Dict, List

from core.exceptions import InputValidationError
from core.models import RuleAction, TransactionRule, make_condition

logger = logging.getLogger(__name__)


def _pick(record: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in record:
            return record[key]
    return default


def _require_mapping(value, where: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise InputValidationError(f"{where}: expected a mapping, got {type(value).__name__}")
    return value


def _require_list(value, where: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise InputValidationError(f"{where}: expected a list, got {type(value).__name__}")
    return value


def rule_from_record(record: Dict[str, Any], index: int = 0) -> TransactionRule:
    """
    Converts one rule record into a TransactionRule.

    Raises:
        InputValidationError: If the record is not shaped like a rule.
    """
    where = f"Rule {index + 1}"
    record = _require_mapping(record, where)

    conditions = []
    for i, item in enumerate(_require_list(record.get("conditions"), f"{where} conditions")):
        item = _require_mapping(item, f"{where} condition {i + 1}")
        conditions.append(make_condition(
            field=item.get("field", ""),
            operator=item.get("operator", ""),
            value=item.get("value"),
            id=str(item.get("id", "")),
        ))

    actions = []
    for i, item in enumerate(_require_list(record.get("actions"), f"{where} actions")):
        item = _require_mapping(item, f"{where} action {i + 1}")
        value = item.get("value", "")
        actions.append(RuleAction(
            type=item.get("type", ""),
            value="" if value is None else str(value),
            id=str(item.get("id", "")),
        ))

    return TransactionRule(
        id=str(record.get("id", f"rule-{index + 1}")),
        name=record.get("name", "") or "",
        enabled=bool(record.get("enabled", True)),
        logic=str(record.get("logic", "and")).lower(),
        conditions=conditions,
        actions=actions,
        description=record.get("description"),
        created_at=str(_pick(record, "created_at", "createdAt", default="")),
        updated_at=str(_pick(record, "updated_at", "updatedAt", default="")),
    )


def rules_from_records(records: List[Dict[str, Any]]) -> List[TransactionRule]:
    """Converts a list of rule records, preserving order."""
    records = _require_list(records, "Rules")
    return [rule_from_record(record, i) for i, record in enumerate(records)]


def load_rules(path: str) -> List[TransactionRule]:
    """
    Reads a YAML rule set. The file holds either a list of rules or a
    mapping with a top-level "rules" list.

    Raises:
        FileNotFoundError: If path does not exist.
        InputValidationError: If the content is not shaped like a rule set.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Rules file not found: {path}")

    with open(path, "r") as f:
        try:
            content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InputValidationError(f"Could not parse rules file {path}: {e}") from e

    if isinstance(content, dict):
        content = content.get("rules")

    rules = rules_from_records(content)
    logger.info(f"Loaded {len(rules):,} rules from {path}")
    return rules
