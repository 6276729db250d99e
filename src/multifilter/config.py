"""
Engine configuration.

Every tunable the engine has lives here: history depth, complexity
thresholds and query-generation defaults. Configuration is a plain
frozen dataclass; YAML files are read with PyYAML.

Example config.yaml:

    history_size: 100
    complexity:
      excellent_below: 10
      good_below: 25
      fair_below: 50
    sql:
      paramstyle: pyformat
      table: orders
    document:
      placeholder: "?"
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Union

import yaml

from multifilter.errors import ConfigError


SQL_PARAMSTYLES = ("qmark", "pyformat")


@dataclass(frozen=True)
class ComplexityPolicy:
    """
    Thresholds of the complexity classifier.

    Tiers are by node count: below `excellent_below` is excellent, below
    `good_below` good, below `fair_below` fair, otherwise poor. A suggestion
    is emitted for each `max_*` limit that is exceeded.
    """

    excellent_below: int = 10
    good_below: int = 25
    fair_below: int = 50
    max_node_count: int = 25
    max_depth: int = 5
    max_operator_diversity: int = 4

    def __post_init__(self):
        if not 0 < self.excellent_below <= self.good_below <= self.fair_below:
            raise ConfigError(
                "Complexity tiers must satisfy 0 < excellent_below <= good_below <= fair_below"
            )

    def tier(self, node_count: int) -> str:
        if node_count < self.excellent_below:
            return "excellent"
        if node_count < self.good_below:
            return "good"
        if node_count < self.fair_below:
            return "fair"
        return "poor"


@dataclass(frozen=True)
class SqlSettings:
    paramstyle: str = "qmark"
    table: str = "data"

    def __post_init__(self):
        if self.paramstyle not in SQL_PARAMSTYLES:
            raise ConfigError(
                f"Unsupported SQL paramstyle {self.paramstyle!r}; expected one of {', '.join(SQL_PARAMSTYLES)}"
            )


@dataclass(frozen=True)
class DocumentSettings:
    placeholder: Any = "value"


@dataclass(frozen=True)
class EngineConfig:
    history_size: int = 50
    complexity: ComplexityPolicy = field(default_factory=ComplexityPolicy)
    sql: SqlSettings = field(default_factory=SqlSettings)
    document: DocumentSettings = field(default_factory=DocumentSettings)

    def __post_init__(self):
        if self.history_size < 1:
            raise ConfigError(f"history_size must be at least 1, got {self.history_size}")


_SECTIONS = {
    "complexity": ComplexityPolicy,
    "sql": SqlSettings,
    "document": DocumentSettings,
}


def _build(cls, data: Mapping[str, Any], where: str):
    if not isinstance(data, Mapping):
        raise ConfigError(f"'{where}' must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{where}': {', '.join(unknown)}")
    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigError(f"Invalid '{where}' section: {e}")


def config_from_dict(data: Mapping[str, Any]) -> EngineConfig:
    """
    Build an EngineConfig from a plain mapping.

    Missing keys keep their defaults; unknown keys raise ConfigError.
    """
    if data is None:
        return EngineConfig()
    if not isinstance(data, Mapping):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key in _SECTIONS:
            values[key] = _build(_SECTIONS[key], value or {}, key)
        else:
            values[key] = value
    return _build(EngineConfig, values, "config")


def config_to_dict(config: EngineConfig) -> Dict[str, Any]:
    return {
        "history_size": config.history_size,
        "complexity": {f.name: getattr(config.complexity, f.name) for f in fields(ComplexityPolicy)},
        "sql": {"paramstyle": config.sql.paramstyle, "table": config.sql.table},
        "document": {"placeholder": config.document.placeholder},
    }


def load_config(path: Union[str, Path]) -> EngineConfig:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigError: The file is not valid YAML or has invalid settings
        FileNotFoundError: The file does not exist
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
    return config_from_dict(data or {})

