# src/circuitsim_core/io/loader.py
"""
Reading and writing circuit documents as JSON or YAML files.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .exceptions import CircuitFileError
from .schema import validate_circuit_document

logger = logging.getLogger(__name__)

JSON_SUFFIXES = (".json",)
YAML_SUFFIXES = (".yaml", ".yml")


def _suffix_of(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in JSON_SUFFIXES + YAML_SUFFIXES:
        raise CircuitFileError(
            details=f"Unsupported circuit file extension '{path.suffix}'. Use .json, .yaml or .yml.",
            file_path=path,
        )
    return suffix


def read_circuit_document(path: Union[str, Path]) -> Dict[str, Any]:
    """Loads and validates the document stored at `path`."""
    source = Path(path)
    suffix = _suffix_of(source)
    if not source.is_file():
        raise CircuitFileError(details=f"Circuit file not found at path: {source}", file_path=source)
    try:
        with source.open("r", encoding="utf-8") as f:
            if suffix in JSON_SUFFIXES:
                content = json.load(f)
            else:
                content = yaml.safe_load(f)
    except PermissionError as e:
        raise CircuitFileError(details=f"Permission denied when trying to read file: {e}", file_path=source) from e
    except json.JSONDecodeError as e:
        raise CircuitFileError(details=f"Invalid JSON syntax: {e}", file_path=source) from e
    except yaml.YAMLError as e:
        raise CircuitFileError(details=f"Invalid YAML syntax: {e}", file_path=source) from e
    if content is None:
        raise CircuitFileError(details="The file is empty or contains no valid content.", file_path=source)
    return validate_circuit_document(content, file_path=source)


def write_circuit_document(document: Dict[str, Any], path: Union[str, Path]) -> Path:
    target = Path(path)
    suffix = _suffix_of(target)
    try:
        with target.open("w", encoding="utf-8") as f:
            if suffix in JSON_SUFFIXES:
                json.dump(document, f, indent=2, ensure_ascii=False)
            else:
                yaml.safe_dump(document, f, sort_keys=False, allow_unicode=True)
    except OSError as e:
        raise CircuitFileError(details=f"Could not write file: {e}", file_path=target) from e
    logger.info(f"Circuit document written to {target}")
    return target


def load_circuit_file(path: Union[str, Path]):
    """Reads a .json, .yaml or .yml file into a new `Circuit`."""
    from ..circuit import Circuit  # circuit.py imports this package

    document = read_circuit_document(path)
    circuit = Circuit.from_json(document, validate=False)
    logger.info(f"Circuit loaded from {path}: {len(circuit.components)} component(s), {len(circuit.wires)} wire(s).")
    return circuit


def save_circuit_file(circuit: Any, path: Union[str, Path]) -> Path:
    """Writes `circuit.to_json()` to a .json, .yaml or .yml file."""
    return write_circuit_document(circuit.to_json(), path)
