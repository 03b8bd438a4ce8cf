"""
External Identifier (Correspondence Payload)
============================================
Defines the record embedded as a JSON string inside every persisted
IdCorrespondence.

Why is this file needed?
------------------------
1. Replay: The payload carries everything needed to rebuild a variable's
   transfer state (orientation, axis assignments, time tag, averaging, time
   step) in a later session, without looking at the current hub values.
2. Stability: The JSON is written with a fixed key order and no whitespace,
   so serialize -> deserialize -> serialize is byte-identical.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from workspacehub.model.hub import ParameterSwitchKind, SampledFunctionParameterType
from workspacehub.model.variables import AxisAssignment, AxisRole, RowOrColumn

if TYPE_CHECKING:
    from workspacehub.model.hub import ParameterType
    from workspacehub.model.variables import WorkspaceVariable

logger = logging.getLogger(__name__)


class MappingDirection(StrEnum):
    HUB_TO_WORKSPACE = "HubToWorkspace"
    WORKSPACE_TO_HUB = "WorkspaceToHub"


@dataclass
class ExternalIdentifier:
    direction: MappingDirection = MappingDirection.WORKSPACE_TO_HUB
    identifier: str = ""
    value_index: Optional[int] = None
    switch_kind: ParameterSwitchKind = ParameterSwitchKind.COMPUTED
    orientation: RowOrColumn = RowOrColumn.COLUMN
    axis_assignment_indices: List[str] = field(default_factory=list)
    time_tagged_axis_index: Optional[int] = None
    is_averaged: bool = False
    selected_time_step: float = 0.0

    def matches(self, other: ExternalIdentifier) -> bool:
        """Same workspace identifier, same direction."""
        return self.identifier == other.identifier and self.direction == other.direction

    # --- Serialization ---

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "identifier": self.identifier,
            "value_index": self.value_index,
            "switch_kind": self.switch_kind.value,
            "orientation": self.orientation.value,
            "axis_assignment_indices": [str(index) for index in self.axis_assignment_indices],
            "time_tagged_axis_index": self.time_tagged_axis_index,
            "is_averaged": bool(self.is_averaged),
            "selected_time_step": float(self.selected_time_step),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> ExternalIdentifier:
        """Raises ValueError when 'data' is not an object or one of its fields has the wrong type."""
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

        indices = data.get("axis_assignment_indices") or []
        if not isinstance(indices, list):
            raise ValueError(f"'axis_assignment_indices' must be a list, got {type(indices).__name__}")

        value_index = data.get("value_index")
        time_index = data.get("time_tagged_axis_index")

        try:
            return ExternalIdentifier(
                direction=MappingDirection(data.get("direction", MappingDirection.WORKSPACE_TO_HUB)),
                identifier=str(data.get("identifier") or ""),
                value_index=int(value_index) if value_index is not None else None,
                switch_kind=ParameterSwitchKind(data.get("switch_kind", ParameterSwitchKind.COMPUTED)),
                orientation=RowOrColumn(data.get("orientation", RowOrColumn.COLUMN)),
                axis_assignment_indices=[str(index) for index in indices],
                time_tagged_axis_index=int(time_index) if time_index is not None else None,
                is_averaged=bool(data.get("is_averaged", False)),
                selected_time_step=float(data.get("selected_time_step", 0.0)),
            )
        except TypeError as e:
            raise ValueError(f"Malformed payload field: {e}") from e

    @staticmethod
    def from_json(text: Optional[str]) -> ExternalIdentifier:
        if not text:
            return ExternalIdentifier()
        return ExternalIdentifier.from_dict(json.loads(text))

    # --- Variable state ---

    @staticmethod
    def from_variable(
        variable: WorkspaceVariable,
        direction: MappingDirection,
        value_index: Optional[int] = None,
        switch_kind: ParameterSwitchKind = ParameterSwitchKind.COMPUTED,
    ) -> ExternalIdentifier:
        """
        Capture the variable's transfer state for one direction.
        Independent axes are written first, then dependent axes.
        """
        if direction == MappingDirection.WORKSPACE_TO_HUB:
            orientation = variable.orientation_to_hub
            assignments = variable.assignments_to_hub
        else:
            orientation = variable.orientation_to_dst
            assignments = variable.assignments_to_dst

        ordered = [a for a in assignments if a.role == AxisRole.INDEPENDENT]
        ordered += [a for a in assignments if a.role == AxisRole.DEPENDENT]

        time_index = next((i for i, a in enumerate(ordered) if a.is_time_tagged), None)

        return ExternalIdentifier(
            direction=direction,
            identifier=variable.identifier,
            value_index=value_index,
            switch_kind=switch_kind,
            orientation=orientation,
            axis_assignment_indices=[a.index for a in ordered],
            time_tagged_axis_index=time_index,
            is_averaged=variable.is_averaged,
            selected_time_step=variable.selected_time_step,
        )

    def to_assignments(self, parameter_type: Optional[ParameterType]) -> List[AxisAssignment]:
        if not self.axis_assignment_indices:
            return []

        if not isinstance(parameter_type, SampledFunctionParameterType):
            logger.debug(
                f"Ignoring axis assignments of '{self.identifier}': "
                f"parameter type is not a sampled function."
            )
            return []

        independent_count = len(parameter_type.independent_parameter_types)
        return [
            AxisAssignment(
                index=index,
                role=AxisRole.INDEPENDENT if position < independent_count else AxisRole.DEPENDENT,
                is_time_tagged=position == self.time_tagged_axis_index,
            )
            for position, index in enumerate(self.axis_assignment_indices)
        ]

    def apply_to(self, variable: WorkspaceVariable, parameter_type: Optional[ParameterType]) -> None:
        """Rebuild the variable's transfer state for this payload's direction."""
        assignments = self.to_assignments(parameter_type)

        if self.direction == MappingDirection.WORKSPACE_TO_HUB:
            variable.orientation_to_hub = self.orientation
            variable.assignments_to_hub = assignments
            variable.is_averaged = self.is_averaged
            variable.selected_time_step = self.selected_time_step
        else:
            variable.orientation_to_dst = self.orientation
            variable.assignments_to_dst = assignments
