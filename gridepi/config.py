"""Configuration system for gridepi.

Two sections:
  - epidemic:   grid size and the infection / outcome rules (EpidemicConfig)
  - simulation: seed and run control for the headless pacing loop

Hierarchical YAML configuration with deep-merge support:
  base.yaml → preset → CLI / sweep overrides

Every numeric epidemic field goes through normalize_field(), which mirrors
lenient form-input parsing (numeric strings accepted,
integer fields truncated) but rejects anything missing or out of range with
ConfigurationError.
"""

from __future__ import annotations

import copy
import dataclasses
import math
import numbers
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


class ConfigurationError(ValueError):
    """A configuration value is missing, non-numeric, or out of range."""


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class EpidemicConfig:
    """Grid and transition-rule parameters consumed by EpidemicEngine."""
    size: int = 128                       # Grid edge length (cells)
    infection_probability: float = 1 / 3  # p_0: per Sick neighbour, per tick
    death_probability: float = 1 / 10     # d_0: Sick → Dead at countdown expiry
    initial_sick_count: int = 1           # Seeds drawn with replacement
    sick_duration: int = 4                # Ticks spent Sick
    immune_duration: int = 4              # Ticks spent Immune


@dataclass
class SimulationSection:
    """Run control for the headless pacing loop."""
    seed: int = 42
    max_ticks: int = 10_000        # Safety cap; the loop normally halts when no cell is Sick
    record_changes: bool = False   # Keep every tick's ChangeSet in the result
    perf: bool = False             # Time evaluate / commit phases


@dataclass
class SimulationConfig:
    """Complete configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    epidemic: EpidemicConfig = field(default_factory=EpidemicConfig)
    simulation: SimulationSection = field(default_factory=SimulationSection)


# ═══════════════════════════════════════════════════════════════════════
# FIELD NORMALISATION
# ═══════════════════════════════════════════════════════════════════════

# Integer fields and their inclusive lower bound
INT_FIELDS = {
    'size': 1,
    'initial_sick_count': 0,
    'sick_duration': 1,
    'immune_duration': 1,
}

PROBABILITY_FIELDS = ('infection_probability', 'death_probability')

EPIDEMIC_FIELDS = tuple(f.name for f in dataclasses.fields(EpidemicConfig))


def _parse_number(name: str, value: Any) -> float:
    if value is None:
        raise ConfigurationError(f"{name} is required")
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be numeric, got {value!r}")
    if isinstance(value, str):
        text = value.strip()
        try:
            number = float(text)
        except ValueError:
            raise ConfigurationError(
                f"{name} must be numeric, got {value!r}"
            ) from None
    elif isinstance(value, numbers.Real):
        number = float(value)
    else:
        raise ConfigurationError(
            f"{name} must be numeric, got {type(value).__name__}"
        )
    if math.isnan(number) or math.isinf(number):
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    return number


def normalize_field(name: str, value: Any) -> Union[int, float]:
    """Parse and range-check a single epidemic field.

    Integer fields accept integral floats and numeric strings; a fractional
    part is truncated toward zero with a UserWarning. Probabilities are
    parsed to float and must lie in [0, 1].

    Args:
        name: EpidemicConfig field name.
        value: Raw value (number or numeric string).

    Returns:
        The normalised value (int or float).

    Raises:
        ConfigurationError: Unknown field, missing / non-numeric value,
            or value out of range.
    """
    if name not in EPIDEMIC_FIELDS:
        raise ConfigurationError(f"Unknown epidemic parameter '{name}'")

    number = _parse_number(name, value)

    if name in PROBABILITY_FIELDS:
        if not 0.0 <= number <= 1.0:
            raise ConfigurationError(
                f"{name} must be in [0, 1], got {value!r}"
            )
        return number

    as_int = int(number)
    if as_int != number:
        warnings.warn(
            f"{name}={value!r} is not an integer; truncated to {as_int}",
            UserWarning,
            stacklevel=2,
        )
    minimum = INT_FIELDS[name]
    if as_int < minimum:
        raise ConfigurationError(
            f"{name} must be >= {minimum}, got {value!r}"
        )
    return as_int


def validate_epidemic_config(config: EpidemicConfig) -> EpidemicConfig:
    """Validate every field and return a normalised copy.

    The input is never modified.

    Raises:
        ConfigurationError: On the first invalid field.
    """
    normalized = {
        name: normalize_field(name, getattr(config, name))
        for name in EPIDEMIC_FIELDS
    }
    return EpidemicConfig(**normalized)


def validate_config(config: SimulationConfig) -> SimulationConfig:
    """Validate a full configuration. Returns a copy with a normalised
    epidemic section.

    Raises:
        ConfigurationError: On any invalid value.
    """
    sim = config.simulation
    if isinstance(sim.seed, bool) or not isinstance(sim.seed, int) or sim.seed < 0:
        raise ConfigurationError(
            f"simulation.seed must be a non-negative integer, got {sim.seed!r}"
        )
    if (isinstance(sim.max_ticks, bool) or not isinstance(sim.max_ticks, int)
            or sim.max_ticks < 1):
        raise ConfigurationError(
            f"simulation.max_ticks must be a positive integer, got {sim.max_ticks!r}"
        )
    for name in ('record_changes', 'perf'):
        value = getattr(sim, name)
        if not isinstance(value, bool):
            raise ConfigurationError(
                f"simulation.{name} must be true or false, got {value!r}"
            )
    return SimulationConfig(
        epidemic=validate_epidemic_config(config.epidemic),
        simulation=copy.copy(sim),
    )


# ═══════════════════════════════════════════════════════════════════════
# PRESETS
# ═══════════════════════════════════════════════════════════════════════

# Bundled scenarios.
PRESETS: Dict[str, Dict[str, Any]] = {
    'small_outbreak': {
        'size': 384,
        'infection_probability': 1 / 9,
        'death_probability': 1 / 50,
        'initial_sick_count': 4,
        'immune_duration': 6,
        'sick_duration': 4,
    },
    'fast_lethal': {
        'size': 768,
        'infection_probability': 1 / 3,
        'death_probability': 0.06,
        'initial_sick_count': int(768 * 768 * 0.001),
        'immune_duration': 6,
        'sick_duration': 2,
    },
    'widespread': {
        'size': 768,
        'infection_probability': 1 / 6,
        'death_probability': 1 / 100,
        'initial_sick_count': int(768 * 768 * 0.01),
        'immune_duration': 6,
        'sick_duration': 2,
    },
    'severe': {
        'size': 768,
        'infection_probability': 1 / 3,
        'death_probability': 1 / 20,
        'initial_sick_count': int(768 * 768 * 0.01),
        'immune_duration': 6,
        'sick_duration': 3,
    },
    'covid_like': {
        'size': 768,
        'infection_probability': 1 / 20,
        'death_probability': 0.06,
        'initial_sick_count': int(768 * 768 * 0.01),
        'immune_duration': 6,
        'sick_duration': 6,
    },
}


def get_preset(name: str) -> EpidemicConfig:
    """Return a fresh EpidemicConfig for a named preset.

    Raises:
        ConfigurationError: If the preset name is unknown.
    """
    if name not in PRESETS:
        raise ConfigurationError(
            f"Unknown preset '{name}'; choose from {sorted(PRESETS)}"
        )
    return EpidemicConfig(**PRESETS[name])


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def parse_override(text: str) -> Dict:
    """Turn a dotted 'section.key=value' string into a nested override dict.

    The value is parsed as YAML, so numbers and booleans keep their type.

    Example:
        >>> parse_override("epidemic.size=64")
        {'epidemic': {'size': 64}}

    Raises:
        ConfigurationError: If the string has no '=' or an empty key.
    """
    key, sep, raw = text.partition('=')
    key = key.strip()
    if not sep or not key:
        raise ConfigurationError(
            f"Override must look like 'section.key=value', got {text!r}"
        )
    value = yaml.safe_load(raw) if raw.strip() else None
    result: Dict = {}
    node = result
    parts = key.split('.')
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value
    return result


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _read_yaml(path: Path) -> Dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{path}: invalid YAML ({exc})") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"{path}: top level must be a mapping, got {type(data).__name__}"
        )
    return data


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration must be a mapping, got {type(data).__name__}"
        )
    epidemic_data: Dict = {}
    preset = data.get('preset')
    if preset is not None:
        if not isinstance(preset, str):
            raise ConfigurationError(
                f"preset must be a name, got {type(preset).__name__}"
            )
        epidemic_data.update(dataclasses.asdict(get_preset(preset)))
    for section in ('epidemic', 'simulation'):
        if data.get(section) is not None and not isinstance(data[section], dict):
            raise ConfigurationError(
                f"'{section}' section must be a mapping, "
                f"got {type(data[section]).__name__}"
            )
    epidemic_data.update(data.get('epidemic') or {})

    return SimulationConfig(
        epidemic=_dict_to_section(EpidemicConfig, epidemic_data),
        simulation=_dict_to_section(SimulationSection, data.get('simulation') or {}),
    )


def load_config(
    base_path: Union[str, Path],
    overrides: Optional[Dict] = None,
    preset: Optional[str] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: file → preset → overrides. A top-level `preset` key in the
    file supplies the starting epidemic parameters, which the file's
    `epidemic` section then overrides field by field. An explicit `preset`
    argument replaces the file's epidemic parameters entirely (its
    `simulation` section is kept); `overrides` are applied last.

    Args:
        base_path: Path to configuration YAML.
        overrides: Optional dict of overrides (e.g. from parse_override()).
        preset: Optional preset name that takes precedence over the file.

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ConfigurationError: If the file is not a YAML mapping or
            validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    config_dict = _read_yaml(base_path)

    if preset is not None:
        config_dict['preset'] = preset
        config_dict.pop('epidemic', None)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    return validate_config(_yaml_to_config(config_dict))


def config_from_dict(data: Dict) -> SimulationConfig:
    """Build a validated SimulationConfig from an in-memory dict."""
    return validate_config(_yaml_to_config(copy.deepcopy(data)))


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    return validate_config(SimulationConfig())
