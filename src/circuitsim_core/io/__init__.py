# src/circuitsim_core/io/__init__.py
"""
The persistence boundary: document schema, serialization and file access.
"""
from .exceptions import CircuitFileError, CircuitSchemaError
from .schema import validate_circuit_document, CircuitDocumentValidator
from .serializer import CircuitDocument, serialize_circuit, deserialize_document
from .loader import load_circuit_file, save_circuit_file, read_circuit_document, write_circuit_document

__all__ = [
    "CircuitFileError",
    "CircuitSchemaError",
    "CircuitDocumentValidator",
    "validate_circuit_document",
    "CircuitDocument",
    "serialize_circuit",
    "deserialize_document",
    "load_circuit_file",
    "save_circuit_file",
    "read_circuit_document",
    "write_circuit_document",
]
