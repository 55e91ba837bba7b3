"""
Configuration for PREC runs.

A `PrecConfig` overrides what the context says about the run itself:
where the built-in rules are read from, whether the PGO provenance typing is
kept and how blank nodes are turned into IRIs. It is usually stored as YAML:

    builtin_rules: null
    keep_provenance: false
    blank_node_mapping:
      pgo:Node: http://example.org/node/
    log_level: INFO
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from prec.errors import ConfigValidationError
from prec.namespaces import PGO, PREC, VOCABULARY

logger = logging.getLogger(__name__)

BUILTIN_RULES_PATH = Path(__file__).parent / "rules" / "builtin_rules.ttl"

# Types of PG elements whose blank nodes can be mapped to IRIs
MAPPABLE_TYPES = (PGO.Node.value, PGO.Edge.value, PREC.PropertyKey.value)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class PrecConfig:
    """Run configuration."""
    builtin_rules: Optional[str] = None
    keep_provenance: Optional[bool] = None
    blank_node_mapping: Dict[str, str] = field(default_factory=dict)
    log_level: str = "WARNING"

    @property
    def builtin_rules_path(self) -> Path:
        """The file that holds the built-in rules and templates."""
        if self.builtin_rules is None:
            return BUILTIN_RULES_PATH
        return Path(self.builtin_rules)

    def expanded_blank_node_mapping(self) -> Dict[str, str]:
        """The blank node mapping with its keys expanded to full IRIs."""
        return {
            VOCABULARY.expand(key): prefix
            for key, prefix in self.blank_node_mapping.items()
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "builtin_rules": self.builtin_rules,
            "keep_provenance": self.keep_provenance,
            "blank_node_mapping": dict(self.blank_node_mapping),
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrecConfig":
        return cls(
            builtin_rules=data.get("builtin_rules"),
            keep_provenance=data.get("keep_provenance"),
            blank_node_mapping=dict(data.get("blank_node_mapping") or {}),
            log_level=data.get("log_level", "WARNING"),
        )

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PrecConfig":
        """Load configuration from a YAML file. A missing file gives the defaults."""
        path = Path(path)
        if not path.exists():
            logger.debug(f"No configuration at {path}, using defaults")
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigValidationError(f"{path} must contain a mapping")

        config = cls.from_dict(data)
        ConfigValidator.validate_or_raise(config)
        return config


class ConfigValidator:
    """Validates a PREC configuration."""

    @staticmethod
    def validate(config: PrecConfig) -> List[str]:
        """
        Validate configuration.

        Returns list of error messages (empty if valid).
        """
        errors = []

        if config.keep_provenance is not None and not isinstance(config.keep_provenance, bool):
            errors.append("keep_provenance must be a boolean or null")

        if config.builtin_rules is not None and not config.builtin_rules_path.exists():
            errors.append(f"builtin_rules file not found: {config.builtin_rules}")

        for key, prefix in config.blank_node_mapping.items():
            if VOCABULARY.expand(key) not in MAPPABLE_TYPES:
                errors.append(
                    f"Invalid blank_node_mapping key {key}: "
                    "expected pgo:Node, pgo:Edge or prec:PropertyKey"
                )
            if not isinstance(prefix, str) or not prefix:
                errors.append(f"blank_node_mapping prefix for {key} must be a non empty string")

        if str(config.log_level).upper() not in LOG_LEVELS:
            errors.append(f"Invalid log_level: {config.log_level}")

        return errors

    @staticmethod
    def validate_or_raise(config: PrecConfig) -> None:
        """Validate configuration, raising on errors."""
        errors = ConfigValidator.validate(config)
        if errors:
            raise ConfigValidationError("; ".join(errors))


def configure_logging(config: PrecConfig) -> None:
    """Apply the log level of the configuration to the `prec` loggers."""
    logging.getLogger("prec").setLevel(str(config.log_level).upper())
