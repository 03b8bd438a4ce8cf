"""
Correspondence Store
====================
Keeps the persisted links between hub identities and workspace identifiers.

Why is this file needed?
------------------------
1. Replay: A later session reloads exactly the same variable <-> parameter
   mapping, including orientation, axis assignments and time-step settings,
   from the ExternalIdentifierMap alone.
2. Stable identity: Adding a link that already exists (same hub identity,
   same workspace identifier, same direction) updates it in place and keeps
   its persisted iid, so repeated transfers never duplicate correspondences.
3. Robustness: Correspondences pointing to hub things that no longer exist
   are skipped one by one; the rest of the map still loads.

Classes:
    CachedCorrespondence: A correspondence with its payload already parsed.
    CorrespondenceStore: add / persist / refresh / load.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Union, TYPE_CHECKING

from workspacehub.config import TOOL_NAME
from workspacehub.controller.rules.hub_to_workspace import ParameterToVariableMapping, ValueSetValue
from workspacehub.model.external_identifier import ExternalIdentifier, MappingDirection
from workspacehub.model.hub import (
    ActualFiniteState, ElementDefinition, ElementUsage, ExternalIdentifierMap, IdCorrespondence,
    Iteration, Option, Parameter, ParameterOrOverrideBase, ParameterOverride, Thing, ThingTransaction
)
from workspacehub.model.variables import WorkspaceVariable

if TYPE_CHECKING:
    from workspacehub.services.connectors import HubConnector

logger = logging.getLogger(__name__)


@dataclass
class CachedCorrespondence:
    internal_id: uuid.UUID
    external_identifier: ExternalIdentifier
    correspondence: IdCorrespondence


@dataclass
class _ResolvedGroup:
    """Hub things referenced by one workspace identifier, sorted by kind."""
    parameters: List[tuple[ParameterOrOverrideBase, ExternalIdentifier]]
    elements: List[ElementDefinition]
    usages: List[ElementUsage]
    option: Optional[Option] = None
    state: Optional[ActualFiniteState] = None


class CorrespondenceStore:
    def __init__(self, hub: HubConnector) -> None:
        self.hub = hub
        self._map: Optional[ExternalIdentifierMap] = None
        self._cache: List[CachedCorrespondence] = []

    # --- Map ---

    @property
    def external_identifier_map(self) -> Optional[ExternalIdentifierMap]:
        return self._map

    @external_identifier_map.setter
    def external_identifier_map(self, mapping: Optional[ExternalIdentifierMap]) -> None:
        self._map = mapping
        self._parse()

    @property
    def correspondences(self) -> List[CachedCorrespondence]:
        return list(self._cache)

    def _parse(self) -> None:
        """Parse every payload once; lookups then work on the cache."""
        self._cache = []
        if self._map is None:
            return

        for correspondence in self._map.correspondences:
            try:
                payload = ExternalIdentifier.from_json(correspondence.external_id)
            except ValueError as e:
                logger.warning(f"Skipping correspondence {correspondence.iid}: unreadable payload ({e})")
                continue

            self._cache.append(CachedCorrespondence(correspondence.internal_thing, payload, correspondence))

        logger.debug(f"Parsed {len(self._cache)} correspondence(s) of map '{self._map.name}'.")

    def create_external_identifier_map(self, name: str) -> ExternalIdentifierMap:
        """An empty, not yet persisted map owned by the current domain."""
        return ExternalIdentifierMap(
            name=name,
            external_tool_name=TOOL_NAME,
            external_model_name=name,
            owner=self.hub.current_domain_of_expertise,
        )

    # --- Recording ---

    def add(
        self,
        internal_id: uuid.UUID,
        external_identifier: Union[ExternalIdentifier, str],
        direction: Optional[MappingDirection] = None,
    ) -> IdCorrespondence:
        """
        Record one link. An existing link with the same hub identity, workspace
        identifier and direction is overwritten in place.
        """
        if self._map is None:
            raise ValueError("No external identifier map is selected.")

        if isinstance(external_identifier, str):
            payload = ExternalIdentifier(
                direction=direction or MappingDirection.WORKSPACE_TO_HUB,
                identifier=external_identifier,
            )
        elif direction is not None:
            payload = replace(external_identifier, direction=direction)
        else:
            payload = external_identifier

        for cached in self._cache:
            if cached.internal_id == internal_id and cached.external_identifier.matches(payload):
                cached.correspondence.internal_thing = internal_id
                cached.correspondence.external_id = payload.to_json()
                cached.external_identifier = payload
                return cached.correspondence

        correspondence = IdCorrespondence(
            internal_thing=internal_id,
            external_id=payload.to_json(),
            container=self._map,
        )
        self._map.correspondences.append(correspondence)
        self._cache.append(CachedCorrespondence(internal_id, payload, correspondence))
        return correspondence

    def add_many(self, mapped_rows: Iterable[ParameterToVariableMapping]) -> None:
        """Record hub -> workspace rows, in order."""
        direction = MappingDirection.HUB_TO_WORKSPACE

        for row in mapped_rows:
            variable = row.selected_variable
            if variable is None:
                continue

            value = row.selected_value
            payload = ExternalIdentifier.from_variable(
                variable, direction, value_index=value.value_index, switch_kind=value.switch_kind
            )
            self.add(row.parameter.iid, payload)
            self._add_cross_links(variable.identifier, direction, value.option, value.state)

    def add_parameter_variables(self, parameter_variable: Dict[uuid.UUID, WorkspaceVariable]) -> None:
        """Record workspace -> hub links: parameter or override, its container, option and state."""
        direction = MappingDirection.WORKSPACE_TO_HUB

        for iid, variable in parameter_variable.items():
            self.add(iid, ExternalIdentifier.from_variable(variable, direction))

            if variable.selected_element_usages:
                for usage in variable.selected_element_usages:
                    self.add(usage.iid, variable.identifier, direction)
            elif variable.selected_element_definition is not None:
                self.add(variable.selected_element_definition.iid, variable.identifier, direction)

            self._add_cross_links(variable.identifier, direction, variable.selected_option, variable.selected_state)

    def _add_cross_links(
        self,
        identifier: str,
        direction: MappingDirection,
        option: Optional[Option],
        state: Optional[ActualFiniteState],
    ) -> None:
        if option is not None:
            self.add(option.iid, identifier, direction)
        if state is not None:
            self.add(state.iid, identifier, direction)

    # --- Hub synchronisation ---

    def persist(self, transaction: ThingTransaction, iteration: Iteration) -> None:
        """
        Stage the map and its correspondences in the caller's transaction.
        New correspondences get an iid and are created, known ones are updated.
        """
        if self._map is None:
            raise ValueError("No external identifier map is selected.")

        if self._map.iid is None:
            self._map.iid = uuid.uuid4()
            self._map.container = iteration
            if self._map not in iteration.external_identifier_maps:
                iteration.external_identifier_maps.append(self._map)
            logger.info(f"Map '{self._map.name}' gets identity {self._map.iid}.")

        created = 0
        for correspondence in self._map.correspondences:
            if correspondence.iid is None:
                correspondence.iid = uuid.uuid4()
                transaction.create(correspondence)
                created += 1
            else:
                transaction.create_or_update(correspondence)

        transaction.create_or_update(self._map)
        logger.info(
            f"Staged map '{self._map.name}': {created} new, "
            f"{len(self._map.correspondences) - created} updated correspondence(s)."
        )

    def refresh(self) -> None:
        """Replace the in-memory map with a clone of the hub's authoritative copy."""
        if self._map is None or self._map.iid is None:
            return

        thing = self.hub.get_thing_by_id(self._map.iid, self.hub.open_iteration)
        if not isinstance(thing, ExternalIdentifierMap):
            logger.warning(f"Map {self._map.iid} could not be fetched from the hub; keeping the local copy.")
            return

        self.external_identifier_map = thing.clone()

    # --- Loading ---

    def correspondences_for(self, identifier: str) -> List[CachedCorrespondence]:
        return [c for c in self._cache if c.external_identifier.identifier == identifier]

    def _grouped(self, direction: MappingDirection) -> Dict[str, List[CachedCorrespondence]]:
        groups: Dict[str, List[CachedCorrespondence]] = {}
        for cached in self._cache:
            if cached.external_identifier.direction == direction:
                groups.setdefault(cached.external_identifier.identifier, []).append(cached)
        return groups

    def _can_load(self) -> bool:
        return self._map is not None and self._map.iid is not None and bool(self._map.correspondences)

    def _resolve(self, group: List[CachedCorrespondence]) -> _ResolvedGroup:
        resolved = _ResolvedGroup(parameters=[], elements=[], usages=[])

        for cached in group:
            thing: Optional[Thing] = self.hub.get_thing_by_id(cached.internal_id, self.hub.open_iteration)

            match thing:
                case None:
                    logger.warning(
                        f"Hub thing {cached.internal_id} mapped to '{cached.external_identifier.identifier}' "
                        f"no longer exists; skipping."
                    )
                case ParameterOverride() | Parameter():
                    resolved.parameters.append((thing, cached.external_identifier))
                case ElementUsage():
                    resolved.usages.append(thing)
                case ElementDefinition():
                    resolved.elements.append(thing)
                case Option():
                    resolved.option = thing
                case ActualFiniteState():
                    resolved.state = thing
                case _:
                    logger.warning(
                        f"Correspondence to unsupported {thing.__class__.__name__} {cached.internal_id}; skipping."
                    )

        return resolved

    def load_to_dst(self, variables: Iterable[WorkspaceVariable]) -> Optional[List[ParameterToVariableMapping]]:
        """
        Rebuild hub -> workspace rows from the map.
        Returns None when there is nothing to load.
        """
        if not self._can_load():
            return None

        by_identifier = {variable.identifier: variable for variable in variables}
        rows = []

        for identifier, group in self._grouped(MappingDirection.HUB_TO_WORKSPACE).items():
            variable = by_identifier.get(identifier)
            if variable is None:
                logger.debug(f"No workspace variable '{identifier}' in this session.")
                continue

            resolved = self._resolve(group)
            for parameter, payload in resolved.parameters:
                payload.apply_to(variable, parameter.parameter_type)
                value_set = parameter.query_value_set(resolved.option, resolved.state)
                rows.append(ParameterToVariableMapping(
                    parameter=parameter,
                    selected_value=ValueSetValue(
                        value_set=value_set,
                        value_index=payload.value_index or 0,
                        switch_kind=payload.switch_kind,
                        option=resolved.option,
                        state=resolved.state,
                    ),
                    selected_variable=variable,
                ))

        logger.info(f"Loaded {len(rows)} hub -> workspace mapping(s).")
        return rows

    def load_to_hub(self, variables: Iterable[WorkspaceVariable]) -> Optional[List[WorkspaceVariable]]:
        """
        Restore the hub selections and transfer state of workspace variables.
        Returns None when there is nothing to load.
        """
        if not self._can_load():
            return None

        by_identifier = {variable.identifier: variable for variable in variables}
        loaded = []

        for identifier, group in self._grouped(MappingDirection.WORKSPACE_TO_HUB).items():
            variable = by_identifier.get(identifier)
            if variable is None:
                logger.debug(f"No workspace variable '{identifier}' in this session.")
                continue

            resolved = self._resolve(group)
            if not resolved.parameters:
                continue

            variable.selected_element_usages = [usage.clone() for usage in resolved.usages]
            variable.selected_option = resolved.option
            variable.selected_state = resolved.state

            for parameter, payload in resolved.parameters:
                self._select_parameter(variable, parameter)
                payload.apply_to(variable, variable.selected_parameter_type)

            for element in resolved.elements:
                if variable.selected_element_definition is None:
                    variable.selected_element_definition = element.clone()

            variable.apply_time_step()
            loaded.append(variable)

        logger.info(f"Loaded {len(loaded)} workspace -> hub mapping(s).")
        return loaded

    @staticmethod
    def _select_parameter(variable: WorkspaceVariable, thing: ParameterOrOverrideBase) -> None:
        parameter = thing.parameter if isinstance(thing, ParameterOverride) else thing
        variable.selected_parameter_type = parameter.parameter_type
        variable.selected_scale = parameter.scale

        element = parameter.get_container_of_type(ElementDefinition)
        if element is None:
            variable.selected_parameter = parameter
            return

        current = variable.selected_element_definition
        if current is None or current.iid != element.iid:
            current = element.clone()
            variable.selected_element_definition = current

        variable.selected_parameter = next((p for p in current.parameters if p.iid == parameter.iid), parameter)
