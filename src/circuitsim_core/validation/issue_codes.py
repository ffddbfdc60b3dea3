# src/circuitsim_core/validation/issue_codes.py
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class TopologyIssueCode(Enum):
    """
    Registry of topology validation issue codes and their message templates.
    Each enum member's value is a tuple: (code_str, message_template_str).
    """

    # --- Fatal (block a simulation start) ---
    TOPO_CONFLICTING_IDEAL_SOURCES = ("TOPO_CONFLICTING_IDEAL_SOURCES", "Ideal voltage constraints {source_ids} form a loop whose required voltages disagree by {mismatch:.6g} V.")
    TOPO_CAPACITOR_LOOP_NO_RESISTANCE = ("TOPO_CAPACITOR_LOOP_NO_RESISTANCE", "Capacitors {component_ids} form a loop with no resistance.")

    # --- Warnings ---
    TOPO_FLOATING_SUBCIRCUIT = ("TOPO_FLOATING_SUBCIRCUIT", "{group_count} sub-circuit(s) have no path to the reference node: {component_ids}.")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def template(self) -> str:
        return self.value[1]

    def format_message(self, **kwargs) -> str:
        """Formats the message template with provided keyword arguments."""
        try:
            return self.template.format(**kwargs)
        except (KeyError, ValueError) as e:
            logger.error(f"Could not format message template of {self.name} (code: {self.code}): '{self.template}'. Provided args: {kwargs}")
            return f"Error formatting message for {self.code}: {e}. Template: '{self.template}' Args: {kwargs}"
