"""
Hub -> Workspace Rule
=====================
Turns selected hub values into previews ready to be pushed to the workspace.

Why is this file needed?
------------------------
1. Previews: Array and sampled-function parameters are shown as numeric arrays
   rebuilt from the flat value set. That reshaping is only done when the
   preview is actually looked at (LazyPreview).
2. Isolation: Every result row carries its own clone of the target variable,
   so editing a result never changes the caller's selection state.

Classes:
    ValueSetValue: One selected value of a value set (index, switch, option, state).
    ParameterToVariableMapping: A hub parameter paired with a workspace variable.
    LazyPreview: A value computed on first access and then cached.
    HubToWorkspaceRule: The transformation itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional

from workspacehub.controller import array_shape, sampled_function
from workspacehub.model.hub import (
    ActualFiniteState, ArrayParameterType, Option, ParameterOrOverrideBase, ParameterSwitchKind,
    ParameterType, ParameterValueSet, SampledFunctionParameterType
)
from workspacehub.model.variables import RowOrColumn, WorkspaceVariable
from workspacehub.utils import parse_decimal

logger = logging.getLogger(__name__)


@dataclass(kw_only=True)
class ValueSetValue:
    value_set: ParameterValueSet
    value_index: int = 0
    switch_kind: ParameterSwitchKind = ParameterSwitchKind.COMPUTED
    option: Optional[Option] = None
    state: Optional[ActualFiniteState] = None

    @property
    def values(self) -> List[str]:
        return self.value_set.values_for(self.switch_kind)

    @property
    def value(self) -> Optional[str]:
        """The entry at 'value_index', else the first entry, else None."""
        values = self.values
        if 0 <= self.value_index < len(values):
            return values[self.value_index]
        return values[0] if values else None


class LazyPreview:
    """Holds a callable and evaluates it once, on first access to 'value'."""

    def __init__(self, compute: Callable[[], Any]) -> None:
        self._compute = compute
        self._value: Any = None
        self._is_computed = False

    @property
    def is_computed(self) -> bool:
        return self._is_computed

    @property
    def value(self) -> Any:
        if not self._is_computed:
            self._value = self._compute()
            self._is_computed = True
        return self._value


@dataclass(kw_only=True)
class ParameterToVariableMapping:
    parameter: ParameterOrOverrideBase
    selected_value: ValueSetValue
    selected_variable: Optional[WorkspaceVariable] = None
    preview: Optional[LazyPreview] = field(default=None, repr=False)

    @property
    def parameter_type(self) -> ParameterType:
        return self.parameter.parameter_type

    @property
    def is_array_like(self) -> bool:
        return isinstance(self.parameter_type, (ArrayParameterType, SampledFunctionParameterType))

    @property
    def is_valid(self) -> bool:
        """A row can be transferred once both ends are chosen; arrays need a whole variable."""
        if self.parameter is None or self.selected_value is None or self.selected_variable is None:
            return False
        if self.is_array_like and self.selected_variable.is_leaf:
            return False
        return True


class HubToWorkspaceRule:
    """
    Pairs each selected hub value with a clone of its target variable and a
    preview of what the workspace will receive.
    """

    def transform(self, rows: Iterable[ParameterToVariableMapping]) -> List[ParameterToVariableMapping]:
        if rows is None:
            raise TypeError("HubToWorkspaceRule.transform() requires a collection of rows, got None")

        result = []
        for row in rows:
            variable = row.selected_variable.clone() if row.selected_variable is not None else None
            mapped = ParameterToVariableMapping(
                parameter=row.parameter,
                selected_value=row.selected_value,
                selected_variable=variable,
            )
            mapped.preview = LazyPreview(self._preview_of(mapped))
            result.append(mapped)

        logger.info(f"Prepared {len(result)} hub value(s) for the workspace.")
        return result

    @staticmethod
    def _preview_of(row: ParameterToVariableMapping) -> Callable[[], Any]:
        parameter_type = row.parameter_type
        value_set = row.selected_value.value_set

        if isinstance(parameter_type, ArrayParameterType):
            return lambda: array_shape.to_numeric(parameter_type, value_set)

        if isinstance(parameter_type, SampledFunctionParameterType):
            variable = row.selected_variable
            orientation = variable.orientation_to_dst if variable is not None else None
            assignments = list(variable.assignments_to_dst) if variable is not None else []

            def compute():
                return sampled_function.compute_array(
                    parameter_type, value_set, orientation or RowOrColumn.COLUMN, assignments
                )
            return compute

        def scalar():
            text = row.selected_value.value
            if text is None:
                return None
            try:
                return parse_decimal(text)
            except ValueError:
                return text
        return scalar
