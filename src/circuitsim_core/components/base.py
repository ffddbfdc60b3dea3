# src/circuitsim_core/components/base.py

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type

from .base_enums import ComponentType
from .exceptions import ComponentError
from .geometry import Point, normalize_point, round_pixel, to_world

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParameterSpec:
    """
    Declaration of one type-specific component parameter.

    `name` is the Python attribute, `json_key` the persisted property key and
    `unit` the SI unit used when a value arrives as a unit-bearing string.
    `kind` selects how the netlist builder sanitizes the raw value:
    'number', 'bool', 'choice' or 'text'.
    """
    name: str
    json_key: str
    default: Any
    unit: Optional[str] = None
    kind: str = "number"
    choices: Tuple[str, ...] = ()
    minimum: Optional[float] = None


class Component:
    """
    The base class for every circuit component.

    A component owns its identity, canvas placement, declared parameters and
    the readouts written back after each accepted solve. It has no knowledge of
    the solver: the netlist builder snapshots it into an immutable stamp.
    """
    component_type: ClassVar[ComponentType]
    terminal_count: ClassVar[int] = 2
    parameter_specs: ClassVar[Tuple[ParameterSpec, ...]] = ()

    def __init__(
        self,
        component_id: str,
        x: float = 0,
        y: float = 0,
        rotation: float = 0,
        label: Optional[str] = None,
        properties: Optional[Mapping[str, Any]] = None,
        display: Optional[Mapping[str, Any]] = None,
        terminal_extensions: Optional[Mapping[Any, Any]] = None,
    ):
        self.id: str = str(component_id)
        self.label: Optional[str] = label
        self.x: int = round_pixel(float(x))
        self.y: int = round_pixel(float(y))
        self.rotation: float = float(rotation or 0)
        self.display: Dict[str, Any] = dict(display) if display else {}
        self.terminal_extensions: Dict[int, Point] = {}
        if terminal_extensions:
            for index, offset in terminal_extensions.items():
                point = normalize_point(offset)
                if point is not None:
                    self.terminal_extensions[int(index)] = point

        self.nodes: List[int] = [-1] * self.terminal_count

        for spec in self.parameter_specs:
            setattr(self, spec.name, spec.default)
        if properties:
            self.set_properties(properties)

        self.reset_readouts()
        logger.debug(f"Initialized {type(self).__name__} '{self.id}'")

    @property
    def type(self) -> str:
        return self.component_type.value

    # --- Parameters ---

    @classmethod
    def get_parameter_spec(cls, key: str) -> Optional[ParameterSpec]:
        for spec in cls.parameter_specs:
            if key in (spec.name, spec.json_key):
                return spec
        return None

    def get_properties(self) -> Dict[str, Any]:
        """Returns the type-specific parameters keyed by their persisted names."""
        return {spec.json_key: getattr(self, spec.name) for spec in self.parameter_specs}

    def set_properties(self, properties: Mapping[str, Any]):
        """
        Assigns parameters by persisted key or attribute name. Values are stored
        as given; sanitizing happens when the netlist is built.
        """
        for key, value in properties.items():
            spec = self.get_parameter_spec(key)
            if spec is None:
                logger.debug(f"Ignoring unknown property '{key}' for {self.type} '{self.id}'.")
                continue
            setattr(self, spec.name, value)

    # --- Readouts ---

    def reset_readouts(self):
        self.voltage_value: float = 0.0
        self.current_value: float = 0.0
        self.power_value: float = 0.0
        self.brightness: float = 0.0

    # --- Geometry ---

    def local_terminal_offset(self, terminal_index: int) -> Tuple[float, float]:
        """Local offset of a terminal before extensions and rotation."""
        return (-30.0, 0.0) if terminal_index == 0 else (30.0, 0.0)

    def _check_terminal(self, terminal_index: int):
        if not isinstance(terminal_index, int) or not 0 <= terminal_index < self.terminal_count:
            raise ComponentError(
                component_id=self.id,
                details=f"Terminal index {terminal_index!r} is out of range for a {self.type} "
                        f"with {self.terminal_count} terminal(s).",
                component_type=self.type,
            )

    def terminal_local_position(self, terminal_index: int) -> Point:
        self._check_terminal(terminal_index)
        dx, dy = self.local_terminal_offset(terminal_index)
        extension = self.terminal_extensions.get(terminal_index)
        if extension is not None:
            dx += extension.x
            dy += extension.y
        return Point(round_pixel(dx), round_pixel(dy))

    def terminal_world_position(self, terminal_index: int) -> Point:
        local = self.terminal_local_position(terminal_index)
        return to_world(self.x, self.y, self.rotation, local.x, local.y)

    def geometry_key(self) -> Tuple:
        """Everything terminal world positions depend on."""
        extensions = tuple(sorted((i, p.x, p.y) for i, p in self.terminal_extensions.items()))
        return (self.x, self.y, self.rotation, extensions)

    def __str__(self) -> str:
        return f"{type(self).__name__}('{self.id}')"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id='{self.id}')"


# --- Global Component Registry and Decorator ---

COMPONENT_REGISTRY: Dict[str, Type[Component]] = {}


def register_component(component_type: ComponentType):
    """
    A class decorator to register a component class in the global component
    registry, making it available to persistence and `create_component`.
    """
    def decorator(cls: Type[Component]):
        if not issubclass(cls, Component):
            raise TypeError(f"Class {cls.__name__} must inherit from Component.")
        if not isinstance(cls.terminal_count, int) or cls.terminal_count < 1:
            raise TypeError(
                f"Component class '{cls.__name__}' violates API contract. "
                f"terminal_count must be a positive integer, got {cls.terminal_count!r}."
            )
        specs = cls.parameter_specs
        if not all(isinstance(s, ParameterSpec) for s in specs):
            raise TypeError(
                f"Component class '{cls.__name__}' violates API contract. "
                f"parameter_specs must contain only ParameterSpec entries."
            )
        names = [s.name for s in specs]
        keys = [s.json_key for s in specs]
        if len(set(names)) != len(names) or len(set(keys)) != len(keys):
            raise TypeError(
                f"Component class '{cls.__name__}' declares duplicate parameters: {keys}."
            )

        type_str = ComponentType(component_type).value
        if type_str in COMPONENT_REGISTRY:
            logger.warning(f"Component type '{type_str}' is being redefined/overwritten.")
        cls.component_type = ComponentType(component_type)
        COMPONENT_REGISTRY[type_str] = cls
        logger.debug(f"Registered component type '{type_str}' -> {cls.__name__}")
        return cls
    return decorator


def create_component(component_type: str, component_id: str, **kwargs) -> Component:
    """Instantiates a registered component type by its type string."""
    cls = COMPONENT_REGISTRY.get(str(component_type))
    if cls is None:
        raise ComponentError(
            component_id=str(component_id),
            details=f"Unknown component type '{component_type}'. "
                    f"Available types: {sorted(COMPONENT_REGISTRY)}.",
            component_type=str(component_type),
        )
    return cls(component_id, **kwargs)
