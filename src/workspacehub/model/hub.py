"""
Hub Data Model
==============
Defines the engineering-model structures the mapping engine reads and writes.

Why is this file needed?
------------------------
1. Vocabulary: The hub stores Elements, Parameters and ValueSets. The mapping
   rules need typed objects to walk, compare by identity, and populate.
2. Isolation: The real hub session lives behind the HubConnector protocol.
   These classes are what it hands over, and what we hand back inside a
   ThingTransaction.

Classes:
    Thing: Base class, identity (iid) plus clone bookkeeping.
    ParameterType and subclasses: Quantity, Text, Boolean, Array, SampledFunction.
    ParameterValueSet: Four parallel value arrays and the switch between them.
    Parameter / ParameterOverride: Typed values attached to elements.
    ElementDefinition / ElementUsage: The element tree.
    IdCorrespondence / ExternalIdentifierMap: Persisted mapping records.
    Iteration: The open model iteration (root container).
    ThingTransaction: Collects created/updated things for the caller to commit.
"""
from __future__ import annotations

import copy
import logging
import math
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterator, List, Optional, Type, TypeVar

import numpy as np

from workspacehub.utils import is_number

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="Thing")


class ParameterSwitchKind(StrEnum):
    COMPUTED = "COMPUTED"
    MANUAL = "MANUAL"
    REFERENCE = "REFERENCE"


@dataclass(kw_only=True, eq=False)
class Thing:
    """
    Base class of every hub object.
    Equality is identity: two Things are the same only if they are the same object.
    """
    iid: uuid.UUID = field(default_factory=uuid.uuid4)
    container: Optional[Thing] = field(default=None, repr=False)
    original: Optional[Thing] = field(default=None, repr=False)

    def clone(self: T) -> T:
        """Shallow copy remembering its source in 'original'."""
        copied = copy.copy(self)
        copied.original = self
        return copied

    def get_container_of_type(self, kind: Type[T]) -> Optional[T]:
        current = self.container
        while current is not None:
            if isinstance(current, kind):
                return current
            current = current.container
        return None


@dataclass(kw_only=True, eq=False)
class DomainOfExpertise(Thing):
    name: str = ""
    short_name: str = ""


@dataclass(kw_only=True, eq=False)
class Option(Thing):
    name: str = ""
    short_name: str = ""


@dataclass(kw_only=True, eq=False)
class ActualFiniteState(Thing):
    name: str = ""
    short_name: str = ""


@dataclass(kw_only=True, eq=False)
class MeasurementScale(Thing):
    name: str = ""
    short_name: str = ""


# --- Parameter types ---

@dataclass(kw_only=True, eq=False)
class ParameterType(Thing, ABC):
    name: str = ""
    short_name: str = ""

    @abstractmethod
    def validate(self, value: Any, scale: Optional[MeasurementScale] = None) -> bool:
        """Check whether a single value is acceptable for this type."""
        pass


@dataclass(kw_only=True, eq=False)
class QuantityKind(ParameterType):
    """Numeric scalar type with a set of allowed measurement scales."""
    default_scale: Optional[MeasurementScale] = field(default=None, repr=False)
    possible_scales: List[MeasurementScale] = field(default_factory=list, repr=False)

    def validate(self, value: Any, scale: Optional[MeasurementScale] = None) -> bool:
        if isinstance(value, (bool, np.bool_)) or not is_number(value):
            return False

        if scale is not None and self.possible_scales and scale not in self.possible_scales:
            return False

        return True


@dataclass(kw_only=True, eq=False)
class TextParameterType(ParameterType):
    def validate(self, value: Any, scale: Optional[MeasurementScale] = None) -> bool:
        return isinstance(value, (str, np.str_))


@dataclass(kw_only=True, eq=False)
class BooleanParameterType(ParameterType):
    def validate(self, value: Any, scale: Optional[MeasurementScale] = None) -> bool:
        if isinstance(value, (bool, np.bool_)):
            return True
        return isinstance(value, str) and value.strip().lower() in ("true", "false")


@dataclass(kw_only=True, eq=False)
class ParameterTypeComponent(Thing):
    parameter_type: ParameterType
    scale: Optional[MeasurementScale] = field(default=None, repr=False)
    short_name: str = ""


@dataclass(kw_only=True, eq=False)
class ArrayParameterType(ParameterType):
    """Fixed rectangular shape; each cell typed by a component."""
    dimension: List[int] = field(default_factory=list)
    components: List[ParameterTypeComponent] = field(default_factory=list, repr=False)

    @property
    def rank(self) -> int:
        return len(self.dimension)

    @property
    def number_of_values(self) -> int:
        return math.prod(self.dimension) if self.dimension else 0

    @property
    def has_single_component_type(self) -> bool:
        if not self.components:
            return False
        first = self.components[0].parameter_type
        return all(c.parameter_type is first for c in self.components)

    def validate(self, value: Any, scale: Optional[MeasurementScale] = None) -> bool:
        from workspacehub.controller import array_shape
        return array_shape.validate(self, value, scale)


@dataclass(kw_only=True, eq=False)
class ParameterTypeAssignment(Thing):
    parameter_type: ParameterType
    measurement_scale: Optional[MeasurementScale] = field(default=None, repr=False)


@dataclass(kw_only=True, eq=False)
class IndependentParameterTypeAssignment(ParameterTypeAssignment):
    pass


@dataclass(kw_only=True, eq=False)
class DependentParameterTypeAssignment(ParameterTypeAssignment):
    pass


@dataclass(kw_only=True, eq=False)
class SampledFunctionParameterType(ParameterType):
    """A tabulated function: ordered independent axes, then dependent axes."""
    independent_parameter_types: List[IndependentParameterTypeAssignment] = field(default_factory=list)
    dependent_parameter_types: List[DependentParameterTypeAssignment] = field(default_factory=list)

    @property
    def number_of_values(self) -> int:
        """Number of axes, i.e. values per sample in a value set."""
        return len(self.independent_parameter_types) + len(self.dependent_parameter_types)

    @property
    def parameters_name(self) -> List[str]:
        names = [a.parameter_type.name for a in self.independent_parameter_types]
        names += [a.parameter_type.name for a in self.dependent_parameter_types]
        return list(dict.fromkeys(names))

    def validate(self, value: Any, scale: Optional[MeasurementScale] = None) -> bool:
        # The per-axis check needs an orientation and assignments,
        # see controller.sampled_function.validate
        return isinstance(value, np.ndarray) and value.ndim == 2


# --- Values ---

@dataclass(kw_only=True, eq=False)
class ParameterValueSet(Thing):
    computed: List[str] = field(default_factory=list)
    manual: List[str] = field(default_factory=list)
    reference: List[str] = field(default_factory=list)
    published: List[str] = field(default_factory=list)
    formula: List[str] = field(default_factory=list)
    value_switch: ParameterSwitchKind = ParameterSwitchKind.MANUAL
    actual_option: Optional[Option] = field(default=None, repr=False)
    actual_state: Optional[ActualFiniteState] = field(default=None, repr=False)

    def values_for(self, switch_kind: ParameterSwitchKind) -> List[str]:
        if switch_kind == ParameterSwitchKind.COMPUTED:
            return self.computed
        if switch_kind == ParameterSwitchKind.REFERENCE:
            return self.reference
        return self.manual

    @property
    def actual_value(self) -> List[str]:
        return self.values_for(self.value_switch)

    def clone(self) -> ParameterValueSet:
        copied = super().clone()
        copied.computed = list(self.computed)
        copied.manual = list(self.manual)
        copied.reference = list(self.reference)
        copied.published = list(self.published)
        copied.formula = list(self.formula)
        return copied


@dataclass(kw_only=True, eq=False)
class ParameterOrOverrideBase(Thing):
    value_sets: List[ParameterValueSet] = field(default_factory=list, repr=False)

    def query_value_set(self, option: Optional[Option] = None,
                        state: Optional[ActualFiniteState] = None) -> ParameterValueSet:
        """
        Find the value set for an option/state combination.
        Independent dimensions are ignored when matching; without a match
        the first value set is returned.
        """
        if not self.value_sets:
            raise ValueError(f"{self.__class__.__name__} {self.iid} has no value set")

        for value_set in self.value_sets:
            if self.is_option_dependent and value_set.actual_option is not option:
                continue
            if self.is_state_dependent and value_set.actual_state is not state:
                continue
            return value_set

        logger.debug(
            f"No value set on {self.__class__.__name__} {self.iid} for option "
            f"'{getattr(option, 'name', None)}' and state '{getattr(state, 'name', None)}'; using the first one."
        )
        return self.value_sets[0]

    def clone(self):
        copied = super().clone()
        copied.value_sets = []
        for value_set in self.value_sets:
            value_set_clone = value_set.clone()
            value_set_clone.container = copied
            copied.value_sets.append(value_set_clone)
        return copied


@dataclass(kw_only=True, eq=False)
class Parameter(ParameterOrOverrideBase):
    parameter_type: ParameterType
    scale: Optional[MeasurementScale] = field(default=None, repr=False)
    owner: Optional[DomainOfExpertise] = field(default=None, repr=False)
    is_option_dependent: bool = False
    is_state_dependent: bool = False


@dataclass(kw_only=True, eq=False)
class ParameterOverride(ParameterOrOverrideBase):
    parameter: Parameter

    @property
    def parameter_type(self) -> ParameterType:
        return self.parameter.parameter_type

    @property
    def scale(self) -> Optional[MeasurementScale]:
        return self.parameter.scale

    @property
    def is_option_dependent(self) -> bool:
        return self.parameter.is_option_dependent

    @property
    def is_state_dependent(self) -> bool:
        return self.parameter.is_state_dependent


# --- Elements ---

@dataclass(kw_only=True, eq=False)
class ElementUsage(Thing):
    name: str = ""
    short_name: str = ""
    element_definition: Optional[ElementDefinition] = field(default=None, repr=False)
    parameter_overrides: List[ParameterOverride] = field(default_factory=list, repr=False)

    def clone(self) -> ElementUsage:
        copied = super().clone()
        copied.parameter_overrides = []
        for override in self.parameter_overrides:
            override_clone = override.clone()
            override_clone.container = copied
            copied.parameter_overrides.append(override_clone)
        return copied


@dataclass(kw_only=True, eq=False)
class ElementDefinition(Thing):
    name: str = ""
    short_name: str = ""
    owner: Optional[DomainOfExpertise] = field(default=None, repr=False)
    parameters: List[Parameter] = field(default_factory=list, repr=False)
    contained_elements: List[ElementUsage] = field(default_factory=list, repr=False)

    def clone(self) -> ElementDefinition:
        copied = super().clone()
        copied.contained_elements = list(self.contained_elements)
        copied.parameters = []
        for parameter in self.parameters:
            parameter_clone = parameter.clone()
            parameter_clone.container = copied
            copied.parameters.append(parameter_clone)
        return copied


# --- Mapping persistence ---

@dataclass(kw_only=True, eq=False)
class IdCorrespondence(Thing):
    iid: Optional[uuid.UUID] = None
    internal_thing: Optional[uuid.UUID] = None
    external_id: str = ""


@dataclass(kw_only=True, eq=False)
class ExternalIdentifierMap(Thing):
    iid: Optional[uuid.UUID] = None
    name: str = ""
    external_tool_name: str = ""
    external_model_name: str = ""
    owner: Optional[DomainOfExpertise] = field(default=None, repr=False)
    correspondences: List[IdCorrespondence] = field(default_factory=list, repr=False)

    def clone(self) -> ExternalIdentifierMap:
        copied = super().clone()
        copied.correspondences = []
        for correspondence in self.correspondences:
            correspondence_clone = correspondence.clone()
            correspondence_clone.container = copied
            copied.correspondences.append(correspondence_clone)
        return copied


@dataclass(kw_only=True, eq=False)
class Iteration(Thing):
    elements: List[ElementDefinition] = field(default_factory=list, repr=False)
    options: List[Option] = field(default_factory=list, repr=False)
    actual_finite_states: List[ActualFiniteState] = field(default_factory=list, repr=False)
    external_identifier_maps: List[ExternalIdentifierMap] = field(default_factory=list, repr=False)

    def iter_things(self) -> Iterator[Thing]:
        """Walk every thing reachable from this iteration."""
        yield from self.options
        yield from self.actual_finite_states
        for element in self.elements:
            yield element
            for parameter in element.parameters:
                yield parameter
                yield from parameter.value_sets
            for usage in element.contained_elements:
                yield usage
                for override in usage.parameter_overrides:
                    yield override
                    yield from override.value_sets
        for mapping in self.external_identifier_maps:
            yield mapping
            yield from mapping.correspondences

    def find(self, iid: Optional[uuid.UUID]) -> Optional[Thing]:
        if iid is None:
            return None
        return next((thing for thing in self.iter_things() if thing.iid == iid), None)


class ThingTransaction:
    """
    Collects things to create or update.
    The caller owns the transaction and commits it through the hub connector.
    """
    def __init__(self) -> None:
        self.created: List[Thing] = []
        self.updated: List[Thing] = []

    def create(self, thing: Thing) -> None:
        self.created.append(thing)

    def create_or_update(self, thing: Thing) -> None:
        if thing not in self.updated:
            self.updated.append(thing)

    @property
    def things(self) -> List[Thing]:
        return self.created + self.updated
