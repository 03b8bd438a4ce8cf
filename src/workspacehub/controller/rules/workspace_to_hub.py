"""
Workspace -> Hub Rule
=====================
Writes workspace variables into hub elements, parameters and value sets.

Why is this file needed?
------------------------
1. Structure: A variable either targets element usages (their parameter
   overrides are updated) or an element definition, which is resolved or
   created once per distinct name, together with the targeted parameter.
2. Serialization: Values always go through invariant formatting. Arrays are
   written row-major, sampled functions one sample per axis, time-tagged
   sampled functions after resampling.
3. All or nothing: The batch works on clones; correspondences are recorded
   only after every variable succeeded. A failing variable aborts the batch
   and its exception reaches the caller unchanged, with a note naming it.

Classes:
    WorkspaceToHubResult: parameter iid -> variable, and the touched elements.
    WorkspaceToHubRule: The transformation itself.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from workspacehub.config import PLACEHOLDER_VALUE
from workspacehub.controller import array_shape, sampled_function
from workspacehub.model.hub import (
    ArrayParameterType, DomainOfExpertise, ElementDefinition, ElementUsage, MeasurementScale, Parameter,
    ParameterOrOverrideBase, ParameterOverride, ParameterSwitchKind, ParameterType, ParameterValueSet,
    SampledFunctionParameterType
)
from workspacehub.model.variables import WorkspaceVariable
from workspacehub.utils import format_invariant

if TYPE_CHECKING:
    from workspacehub.controller.correspondence import CorrespondenceStore
    from workspacehub.services.connectors import HubConnector

logger = logging.getLogger(__name__)


@dataclass
class WorkspaceToHubResult:
    parameter_variable: Dict[uuid.UUID, WorkspaceVariable] = field(default_factory=dict)
    elements: List[ElementDefinition | ElementUsage] = field(default_factory=list)


class WorkspaceToHubRule:
    def __init__(self, hub: HubConnector, store: Optional[CorrespondenceStore] = None) -> None:
        self.hub = hub
        self.store = store

    def transform(self, variables: Iterable[WorkspaceVariable]) -> WorkspaceToHubResult:
        if variables is None:
            raise TypeError("WorkspaceToHubRule.transform() requires a collection of variables, got None")

        owner = self.hub.current_domain_of_expertise
        elements_by_name: Dict[str, ElementDefinition] = {}
        result = WorkspaceToHubResult()

        for variable in [v.clone() for v in variables]:
            try:
                if variable.selected_element_usages:
                    self._update_usages(variable, result)
                else:
                    element = self._resolve_element(variable, elements_by_name, owner)
                    parameter = self._resolve_parameter(variable, element, owner)
                    self._write_value_set(variable, parameter)
                    result.parameter_variable[parameter.iid] = variable
                    if element not in result.elements:
                        result.elements.append(element)

            except Exception as e:
                logger.exception(f"Failed to map '{variable.name}' to the hub: {e}")
                e.add_note(f"Raised while mapping workspace variable '{variable.name}' ({variable.identifier}).")
                raise e

        if self.store is not None:
            self.store.add_parameter_variables(result.parameter_variable)

        logger.info(
            f"Mapped {len(result.parameter_variable)} parameter(s) on {len(result.elements)} element(s) to the hub."
        )
        return result

    # --- Elements ---

    def _resolve_element(
        self,
        variable: WorkspaceVariable,
        elements_by_name: Dict[str, ElementDefinition],
        owner: Optional[DomainOfExpertise],
    ) -> ElementDefinition:
        """Each distinct name yields exactly one element per batch."""
        selected = variable.selected_element_definition
        name = selected.name if selected is not None else variable.name

        element = elements_by_name.get(name)
        if element is None:
            if selected is not None:
                element = selected.clone()
            else:
                element = self._existing_or_new_element(name, owner)
            elements_by_name[name] = element

        variable.selected_element_definition = element
        return element

    def _existing_or_new_element(self, name: str, owner: Optional[DomainOfExpertise]) -> ElementDefinition:
        iteration = self.hub.open_iteration
        if iteration is not None:
            existing = next((e for e in iteration.elements if e.name == name), None)
            if existing is not None:
                return existing.clone()

        logger.debug(f"Creating element definition '{name}'.")
        return ElementDefinition(name=name, short_name=name, owner=owner, container=iteration)

    # --- Parameters ---

    def _resolve_parameter(
        self,
        variable: WorkspaceVariable,
        element: ElementDefinition,
        owner: Optional[DomainOfExpertise],
    ) -> Parameter:
        selected = variable.selected_parameter
        if selected is not None:
            found = next((p for p in element.parameters if p.iid == selected.iid), None)
            if found is not None:
                variable.selected_parameter = found
                variable.selected_parameter_type = found.parameter_type
                return found

        parameter_type = variable.selected_parameter_type
        if parameter_type is None and selected is not None:
            parameter_type = selected.parameter_type
        if parameter_type is None:
            raise ValueError(f"No parameter or parameter type is selected for '{variable.name}'.")

        parameter = next((p for p in element.parameters if p.parameter_type.iid == parameter_type.iid), None)
        if parameter is None:
            parameter = self._bake_parameter(parameter_type, variable.selected_scale, owner, element)
        elif variable.selected_scale is not None:
            parameter.scale = variable.selected_scale

        variable.selected_parameter = parameter
        variable.selected_parameter_type = parameter_type
        return parameter

    @staticmethod
    def _bake_parameter(
        parameter_type: ParameterType,
        scale: Optional[MeasurementScale],
        owner: Optional[DomainOfExpertise],
        element: ElementDefinition,
    ) -> Parameter:
        logger.debug(f"Creating parameter '{parameter_type.name}' on '{element.name}'.")
        parameter = Parameter(parameter_type=parameter_type, scale=scale, owner=owner, container=element)
        placeholder = [PLACEHOLDER_VALUE, PLACEHOLDER_VALUE]
        parameter.value_sets.append(ParameterValueSet(
            computed=[],
            manual=list(placeholder),
            reference=list(placeholder),
            published=list(placeholder),
            formula=list(placeholder),
            container=parameter,
        ))
        element.parameters.append(parameter)
        return parameter

    def _update_usages(self, variable: WorkspaceVariable, result: WorkspaceToHubResult) -> None:
        """Update the override of the selected parameter on every selected usage."""
        selected = variable.selected_parameter
        if selected is None:
            raise ValueError(f"'{variable.name}' targets element usages but no parameter is selected.")

        parameter = selected.parameter if isinstance(selected, ParameterOverride) else selected
        usages = []

        for usage in variable.selected_element_usages:
            usage = usage.clone()
            usages.append(usage)

            override = next((o for o in usage.parameter_overrides if o.parameter.iid == parameter.iid), None)
            if override is None:
                logger.warning(f"Usage '{usage.name}' does not override '{parameter.parameter_type.name}'; skipping.")
                continue

            self._write_value_set(variable, override)
            result.parameter_variable[override.iid] = variable
            result.elements.append(usage)

        variable.selected_element_usages = usages

    # --- Values ---

    def _write_value_set(self, variable: WorkspaceVariable, parameter: ParameterOrOverrideBase) -> None:
        value_set = parameter.query_value_set(variable.selected_option, variable.selected_state)
        value_set.computed = self._values_of(variable, parameter.parameter_type, parameter.scale)
        value_set.value_switch = ParameterSwitchKind.COMPUTED

    @staticmethod
    def _values_of(
        variable: WorkspaceVariable,
        parameter_type: ParameterType,
        scale: Optional[MeasurementScale],
    ) -> List[str]:
        match parameter_type:
            case SampledFunctionParameterType():
                if not sampled_function.validate(
                    parameter_type, variable.value, variable.orientation_to_hub, variable.assignments_to_hub
                ):
                    raise ValueError(f"'{variable.name}' does not fit the axes of '{parameter_type.name}'.")

                time_assignment = variable.time_tagged_assignment
                if time_assignment is None:
                    return sampled_function.to_value_array(
                        variable.value, variable.orientation_to_hub, variable.assignments_to_hub
                    )

                variable.apply_time_step()
                time_index = sampled_function.ordered(variable.assignments_to_hub).index(time_assignment)
                return sampled_function.time_tagged_value_array(variable.time_tagged_values, time_index)

            case ArrayParameterType():
                if not array_shape.validate(parameter_type, variable.value, variable.selected_scale or scale):
                    raise ValueError(f"'{variable.name}' does not fit the shape of '{parameter_type.name}'.")
                return array_shape.flatten(variable.value)

            case _:
                if variable.is_array:
                    raise ValueError(f"'{variable.name}' is an array but '{parameter_type.name}' holds one value.")
                return [format_invariant(variable.value)]
