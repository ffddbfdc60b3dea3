# tests/conftest.py
import pytest

from circuitsim_core import Circuit, SimulationSettings
from tests.circuit_helpers import build_rc_circuit, build_series_circuit


@pytest.fixture
def circuit():
    return Circuit()


@pytest.fixture
def settings():
    return SimulationSettings()


@pytest.fixture
def series_circuit():
    """12 V ideal source with 100 ohm + 100 ohm in series."""
    return build_series_circuit()


@pytest.fixture
def rc_circuit():
    return build_rc_circuit()
