"""
Configuration loader – reads the fallback phrasing rules from the
rules/ directory and validates them at startup.
"""

import logging
import os
import re

import yaml

from job_mail_ingest.errors import ConfigError
from job_mail_ingest.models import RecordStatus

log = logging.getLogger(__name__)

DEFAULT_PATTERNS_FILE = "fallback_patterns.yml"


def _config_path(filename):
    return os.path.join(os.path.dirname(__file__), "rules", filename)


def _compile(pattern, where):
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise ConfigError(f"Invalid regex in {where}: {exc}") from exc


def load_fallback_patterns(path=None):
    """Load and compile the fallback rules.

    Returns a dict with 'default_title' (compiled regex or None) and
    'rules' (list of dicts with name, status, pattern, requires).
    """
    path = path or _config_path(DEFAULT_PATTERNS_FILE)
    if not os.path.exists(path):
        raise ConfigError(f"Fallback pattern file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    default_title = raw.get("default_title_pattern")
    compiled = {
        "default_title": _compile(default_title, "default_title_pattern") if default_title else None,
        "rules": [],
    }

    for idx, rule in enumerate(raw.get("rules") or []):
        name = rule.get("name") or f"rule_{idx}"
        if not rule.get("pattern"):
            raise ConfigError(f"Fallback rule '{name}' has no pattern")
        try:
            status = RecordStatus(rule.get("status") or RecordStatus.NEW.value)
        except ValueError as exc:
            raise ConfigError(f"Fallback rule '{name}' has unknown status {rule.get('status')!r}") from exc
        pattern = _compile(rule["pattern"], f"rule '{name}'")
        if "title" not in pattern.groupindex and compiled["default_title"] is None:
            log.warning("Fallback rule '%s' has no title group and no default title pattern", name)
        compiled["rules"].append({
            "name": name,
            "status": status,
            "pattern": pattern,
            "requires": _compile(rule["requires"], f"rule '{name}' requires") if rule.get("requires") else None,
        })

    log.info("Loaded %d fallback rules from %s", len(compiled["rules"]), os.path.basename(path))
    return compiled
