# src/circuitsim_core/simulation/config.py
import logging
import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import cerberus
import yaml

from ..constants import (
    AC_MAX_SUBSTEPS,
    AC_SAMPLES_PER_PERIOD,
    DEFAULT_DT,
    DEFAULT_MAX_ADAPTIVE_DT,
    DEFAULT_MIN_ADAPTIVE_DT,
    GMIN_SIEMENS,
    NEWTON_MAX_ITERATIONS,
    NEWTON_VOLTAGE_TOLERANCE,
)
from ..errors import DiagnosableError, format_diagnostic_report
from ..log_config import setup_logging

logger = logging.getLogger(__name__)

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass()
class ConfigParsingError(DiagnosableError, ValueError):
    """Raised for errors while reading or validating simulation settings."""
    details: str
    source_file: Optional[Path] = None

    def __str__(self):
        return self.details

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Simulation Settings Error",
            details=self.details,
            suggestion="Check the settings keys and value types. Unknown keys are rejected.",
            context={'source_file': str(self.source_file) if self.source_file else None}
        )


@dataclass
class SimulationSettings:
    """Tunable policy for one simulation session."""
    dt: float = DEFAULT_DT
    enable_adaptive_time_step: bool = False
    min_adaptive_dt: float = DEFAULT_MIN_ADAPTIVE_DT
    max_adaptive_dt: float = DEFAULT_MAX_ADAPTIVE_DT
    gmin: float = GMIN_SIEMENS
    newton_max_iterations: int = NEWTON_MAX_ITERATIONS
    newton_voltage_tolerance: float = NEWTON_VOLTAGE_TOLERANCE
    ac_samples_per_period: int = AC_SAMPLES_PER_PERIOD
    ac_max_substeps: int = AC_MAX_SUBSTEPS
    reject_invalid_parameters: bool = False
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SettingsValidator(cerberus.Validator):
    """Cerberus validator with a rule for strictly positive finite numbers."""

    def _validate_positive_finite(self, constraint: bool, field: str, value: Any):
        """
        The rule's arguments are validated against this schema:
        {'type': 'boolean'}
        """
        if not constraint or isinstance(value, bool) or not isinstance(value, (int, float)):
            return
        if not math.isfinite(value) or value <= 0:
            self._error(field, f"must be a positive finite number, got {value!r}.")


_POSITIVE = {"type": "number", "positive_finite": True}

SETTINGS_SCHEMA = {
    "dt": _POSITIVE,
    "enable_adaptive_time_step": {"type": "boolean"},
    "min_adaptive_dt": _POSITIVE,
    "max_adaptive_dt": _POSITIVE,
    "gmin": _POSITIVE,
    "newton_max_iterations": {"type": "integer", "min": 1},
    "newton_voltage_tolerance": _POSITIVE,
    "ac_samples_per_period": {"type": "integer", "min": 1},
    "ac_max_substeps": {"type": "integer", "min": 1},
    "reject_invalid_parameters": {"type": "boolean"},
    "log_level": {"type": "string", "allowed": _LOG_LEVELS, "coerce": lambda v: str(v).upper()},
}


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigParsingError(f"Settings file not found at path: {path}", source_file=path)
    try:
        with path.open("r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParsingError(f"Invalid YAML syntax: {e}", source_file=path) from e
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigParsingError("The root of the settings file must be a mapping.", source_file=path)
    # Allow either a bare mapping or one nested under 'simulation'.
    if set(content) == {"simulation"} and isinstance(content["simulation"], dict):
        return content["simulation"]
    return content


def load_settings(
    source: Union[str, Path, Mapping[str, Any], None] = None,
    apply_logging: bool = False,
) -> SimulationSettings:
    """
    Builds `SimulationSettings` from a YAML file path or a mapping.

    Keys missing from the source keep their defaults. Unknown keys, wrong types
    and out-of-range values raise `ConfigParsingError`. With `apply_logging`
    the root logger is reconfigured at the settings' `log_level`.
    """
    source_file: Optional[Path] = None
    if source is None:
        raw: Dict[str, Any] = {}
    elif isinstance(source, Mapping):
        raw = dict(source)
    else:
        source_file = Path(source).resolve()
        raw = _read_yaml(source_file)

    validator = SettingsValidator(SETTINGS_SCHEMA)
    validator.allow_unknown = False
    if not validator.validate(raw):
        raise ConfigParsingError(
            f"Settings failed validation: {validator.errors}", source_file=source_file
        )
    document = validator.document

    known = {f.name for f in fields(SimulationSettings)}
    settings = SimulationSettings(**{k: v for k, v in document.items() if k in known})
    for name in ("dt", "min_adaptive_dt", "max_adaptive_dt", "gmin", "newton_voltage_tolerance"):
        setattr(settings, name, float(getattr(settings, name)))

    if settings.min_adaptive_dt > settings.max_adaptive_dt:
        raise ConfigParsingError(
            f"min_adaptive_dt ({settings.min_adaptive_dt}) must not exceed "
            f"max_adaptive_dt ({settings.max_adaptive_dt}).",
            source_file=source_file,
        )

    if apply_logging:
        setup_logging(settings.log_level)
    logger.info(f"Simulation settings loaded: {settings}")
    return settings
