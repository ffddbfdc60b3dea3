# src/circuitsim_core/validation/__init__.py
import logging
logger = logging.getLogger(__name__)

from .issues import ValidationIssue, ValidationIssueLevel
from .issue_codes import TopologyIssueCode
from .topology_validator import TopologyValidator, TopologyReport
from .exceptions import TopologyValidationError

__all__ = [
    "ValidationIssue",
    "ValidationIssueLevel",
    "TopologyIssueCode",
    "TopologyValidator",
    "TopologyReport",
    "TopologyValidationError",
]
