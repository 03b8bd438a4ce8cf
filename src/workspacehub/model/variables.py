"""
Workspace Variables (Data Model)
================================
This module defines how one entry of the numeric workspace is represented.

Why is this file needed?
------------------------
1. Addressing: An array variable can be mapped as a whole, or cell by cell.
   Unwrapping keeps the array owner and adds one scalar leaf per cell
   ('name[row,col]'), so both ways of addressing coexist.
2. Transfer state: Orientation, axis assignments, averaging and the selected
   time step are kept per transfer direction, because a variable can be sent
   to the hub and received from the hub with different layouts.
3. Safety: Leaves refuse values that do not fit their declared parameter type,
   instead of silently coercing them.

Classes:
    RowOrColumn: Whether axes are laid out as array rows or columns.
    AxisRole: Independent or dependent axis.
    AxisAssignment: One array row/column bound to one declared axis.
    TimeTaggedValue: One resampled (time, values) row.
    WorkspaceVariable: The variable itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Iterator, List, Optional, Tuple, TYPE_CHECKING

import numpy as np

from workspacehub.config import DEFAULT_IDENTIFIER_SUFFIX
from workspacehub.model.hub import ArrayParameterType, QuantityKind, SampledFunctionParameterType

if TYPE_CHECKING:
    from workspacehub.model.hub import (
        ActualFiniteState, ElementDefinition, ElementUsage, MeasurementScale, Option,
        ParameterOrOverrideBase, ParameterType
    )

logger = logging.getLogger(__name__)


class RowOrColumn(StrEnum):
    ROW = "Row"
    COLUMN = "Column"


class AxisRole(StrEnum):
    INDEPENDENT = "Independent"
    DEPENDENT = "Dependent"


@dataclass
class AxisAssignment:
    """Binds the row or column at 'index' to a declared independent/dependent axis."""
    index: str
    role: AxisRole
    is_time_tagged: bool = False

    @property
    def position(self) -> int:
        return int(self.index)


@dataclass(frozen=True)
class TimeTaggedValue:
    time: float
    values: Tuple[float, ...] = field(default_factory=tuple)


def _normalize(value: Any) -> Any:
    """Scalars stay scalars, sequences become 2-D arrays (1-D is a row vector)."""
    if isinstance(value, (list, tuple, np.ndarray)):
        array = np.array(value)
        if array.ndim == 0:
            return array.item()
        if array.size == 0:
            raise ValueError("Workspace arrays must hold at least one value.")
        if array.ndim == 1:
            array = array.reshape(1, -1)
        if array.ndim > 2:
            raise ValueError(f"Only 1-D and 2-D arrays are supported, got {array.ndim} dimensions.")
        if array.dtype.kind in "USO":
            array = array.astype(object)
        return array

    if isinstance(value, np.generic):
        return value.item()

    return value


def _is_real_number(value: Any) -> bool:
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, (bool, np.bool_))


def _fit_cell(array: np.ndarray, value: Any) -> np.ndarray:
    """Widen 'array' so that 'value' can be stored in one of its cells without loss."""
    if array.dtype == object:
        return array
    cell = np.asarray(value).dtype
    if np.can_cast(cell, array.dtype, casting="safe"):
        return array
    if cell.kind in "biuf" and array.dtype.kind in "biuf":
        return array.astype(np.result_type(array.dtype, cell))
    return array.astype(object)


class WorkspaceVariable:
    """
    One workspace entry: a scalar, or an array owning scalar leaves.
    """

    def __init__(
        self,
        name: str,
        value: Any,
        identifier: Optional[str] = None,
        parent_name: Optional[str] = None,
    ) -> None:
        self.name = name
        self.identifier = identifier or f"{name}-{DEFAULT_IDENTIFIER_SUFFIX}"
        self.parent_name = parent_name
        self._value = _normalize(value)

        # Tree
        self.children: List[WorkspaceVariable] = []
        self.position: Optional[Tuple[int, int]] = None
        self._owner: Optional[WorkspaceVariable] = None

        # Transfer state, per direction
        self.orientation_to_hub: RowOrColumn = RowOrColumn.COLUMN
        self.orientation_to_dst: RowOrColumn = RowOrColumn.COLUMN
        self.assignments_to_hub: List[AxisAssignment] = []
        self.assignments_to_dst: List[AxisAssignment] = []
        self.is_averaged: bool = False
        self.selected_time_step: float = 0.0
        self.time_tagged_values: Iterator[TimeTaggedValue] = iter(())

        # Hub selections
        self.selected_element_definition: Optional[ElementDefinition] = None
        self.selected_element_usages: List[ElementUsage] = []
        self.selected_parameter: Optional[ParameterOrOverrideBase] = None
        self.selected_parameter_type: Optional[ParameterType] = None
        self.selected_scale: Optional[MeasurementScale] = None
        self.selected_option: Optional[Option] = None
        self.selected_state: Optional[ActualFiniteState] = None

    def __repr__(self) -> str:
        return f"WorkspaceVariable(name={self.name!r}, identifier={self.identifier!r}, value={self._value!r})"

    # --- Value ---

    @property
    def value(self) -> Any:
        return self._value

    @value.setter
    def value(self, new_value: Any) -> None:
        self.set_value(new_value)

    @property
    def is_array(self) -> bool:
        return isinstance(self._value, np.ndarray)

    @property
    def is_leaf(self) -> bool:
        return self.parent_name is not None

    @property
    def identifier_suffix(self) -> str:
        prefix = f"{self.name}-"
        return self.identifier[len(prefix):] if self.identifier.startswith(prefix) else self.identifier

    def set_value(self, new_value: Any) -> bool:
        """
        Assign a new value. Returns False when a leaf refuses the value;
        the previous value is then kept.
        """
        if not self.is_leaf:
            self._value = _normalize(new_value)
            self.children = []
            return True

        if not self._accepts(new_value):
            logger.warning(
                f"Rejected value {new_value!r} for '{self.name}': does not match its declared type."
            )
            return False

        self._value = _normalize(new_value)
        if self._owner is not None and self.position is not None and self._owner.is_array:
            self._owner._value = _fit_cell(self._owner._value, self._value)
            self._owner._value[self.position] = self._value
        return True

    def _accepts(self, new_value: Any) -> bool:
        if isinstance(new_value, (list, tuple, np.ndarray)) and np.ndim(new_value) > 0:
            return False

        declared = self.selected_parameter_type
        if isinstance(declared, ArrayParameterType):
            declared = declared.components[0].parameter_type if declared.has_single_component_type else None
        elif isinstance(declared, SampledFunctionParameterType):
            return _is_real_number(new_value)

        if isinstance(declared, QuantityKind) and not _is_real_number(new_value):
            return False
        if declared is not None:
            return declared.validate(new_value, self.selected_scale)

        if _is_real_number(self._value):
            return _is_real_number(new_value)

        return True

    # --- Tree ---

    def unwrap(self) -> List[WorkspaceVariable]:
        """
        Returns the addressable leaves of this variable.
        Scalars and leaves are returned as-is; arrays get one leaf per cell.
        """
        if self.is_leaf or not self.is_array:
            return [self]

        suffix = self.identifier_suffix
        rows, columns = self._value.shape
        self.children = []

        for row_index in range(rows):
            for column_index in range(columns):
                leaf_name = f"{self.name}[{row_index},{column_index}]"
                leaf = WorkspaceVariable(
                    leaf_name,
                    self._value[row_index, column_index],
                    identifier=f"{leaf_name}-{suffix}",
                    parent_name=self.name,
                )
                leaf.position = (row_index, column_index)
                leaf._owner = self
                self.children.append(leaf)

        logger.debug(f"Unwrapped '{self.name}' into {len(self.children)} leaves.")
        return list(self.children)

    def clone(self) -> WorkspaceVariable:
        """Copy of the variable and its selection state; hub things are shared."""
        value = self._value.copy() if self.is_array else self._value
        copied = WorkspaceVariable(self.name, value, identifier=self.identifier, parent_name=self.parent_name)
        copied.position = self.position
        copied.orientation_to_hub = self.orientation_to_hub
        copied.orientation_to_dst = self.orientation_to_dst
        copied.assignments_to_hub = [replace(a) for a in self.assignments_to_hub]
        copied.assignments_to_dst = [replace(a) for a in self.assignments_to_dst]
        copied.is_averaged = self.is_averaged
        copied.selected_time_step = self.selected_time_step

        copied.selected_element_definition = self.selected_element_definition
        copied.selected_element_usages = list(self.selected_element_usages)
        copied.selected_parameter = self.selected_parameter
        copied.selected_parameter_type = self.selected_parameter_type
        copied.selected_scale = self.selected_scale
        copied.selected_option = self.selected_option
        copied.selected_state = self.selected_state
        return copied

    # --- Time tagging ---

    @property
    def time_tagged_assignment(self) -> Optional[AxisAssignment]:
        return next((a for a in self.assignments_to_hub if a.is_time_tagged), None)

    def apply_time_step(self) -> None:
        """
        Recompute 'time_tagged_values' from the current time step/averaging state.
        Must be called again after any of these fields change.
        """
        time_assignment = self.time_tagged_assignment
        if time_assignment is None or not self.is_array:
            self.time_tagged_values = iter(())
            return

        from workspacehub.controller import sampled_function

        assignments = sampled_function.ordered(self.assignments_to_hub)
        axes = sampled_function.decompose(self._value, self.orientation_to_hub, assignments)
        time_position = assignments.index(time_assignment)
        time_values = axes[time_position][1]
        dependent_values = [values for position, (_, values) in enumerate(axes) if position != time_position]

        self.time_tagged_values = sampled_function.resample(
            time_values, dependent_values, self.is_averaged, self.selected_time_step
        )


def unwrap(variable: WorkspaceVariable) -> List[WorkspaceVariable]:
    return variable.unwrap()
