"""
Workspace Controller
====================
Session-level glue between the workspace tool, the mapping rules and the hub
transaction.

Why is this file needed?
------------------------
1. Session: Holds the connector and the list of workspace variables of the
   current session (top-level variables and their unwrapped leaves).
2. Transfers: Runs the rules for a batch, stages the result in the caller's
   hub transaction, or pushes previews back into the workspace.
3. Bookkeeping: Every transfer records its correspondences, so the next
   session can replay it.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from workspacehub.config import DEFAULT_IDENTIFIER_SUFFIX
from workspacehub.controller.mapping_configuration import MappingConfigurationService
from workspacehub.controller.rules.hub_to_workspace import HubToWorkspaceRule, ParameterToVariableMapping
from workspacehub.controller.rules.workspace_to_hub import WorkspaceToHubResult, WorkspaceToHubRule
from workspacehub.model.hub import ElementDefinition, Iteration, ThingTransaction
from workspacehub.model.variables import WorkspaceVariable

if TYPE_CHECKING:
    from workspacehub.services.connectors import WorkspaceConnector

logger = logging.getLogger(__name__)


class WorkspaceController:
    def __init__(
        self,
        connector: WorkspaceConnector,
        mapping: MappingConfigurationService,
        suffix: str = DEFAULT_IDENTIFIER_SUFFIX,
    ) -> None:
        self.connector = connector
        self.mapping = mapping
        self.suffix = suffix

        self.is_session_open: bool = False
        self.variables: List[WorkspaceVariable] = []
        self.hub_mapping: Optional[WorkspaceToHubResult] = None
        self.workspace_mapping: List[ParameterToVariableMapping] = []

    # --- Session ---

    def connect(self) -> None:
        self.connector.connect()
        self.is_session_open = True
        logger.info("Workspace session opened.")

    def disconnect(self) -> None:
        self.connector.disconnect()
        self.is_session_open = False
        logger.info("Workspace session closed.")

    def execute(self, command: str) -> str:
        return self.connector.execute(command)

    def load_variables(self, names: Iterable[str]) -> List[WorkspaceVariable]:
        """Fetch variables by name and keep them, with their leaves, as the session list."""
        names = list(names)
        variables = []
        for name in names:
            variable = self.connector.get_variable(name)
            variable.identifier = f"{variable.name}-{self.suffix}"
            variables.append(variable)
            if variable.is_array:
                variables.extend(variable.unwrap())

        self.variables = variables
        logger.info(f"Loaded {len(names)} workspace variable(s), {len(variables)} entries with leaves.")
        return list(variables)

    def find_variable(self, name: str) -> Optional[WorkspaceVariable]:
        return next((v for v in self.variables if v.name == name), None)

    # --- Workspace -> Hub ---

    def map_to_hub(self, variables: Iterable[WorkspaceVariable]) -> WorkspaceToHubResult:
        rule = WorkspaceToHubRule(self.mapping.hub, self.mapping.store)
        self.hub_mapping = rule.transform(variables)
        return self.hub_mapping

    def populate_hub_transaction(self, transaction: ThingTransaction, iteration: Iteration) -> None:
        """Stage the mapped elements, their written value sets and the map itself."""
        if self.hub_mapping is None:
            logger.debug("Nothing mapped to the hub yet.")
            return

        mapped = self.hub_mapping.parameter_variable

        for element in self.hub_mapping.elements:
            if element.original is None:
                transaction.create(element)
            else:
                transaction.create_or_update(element)

            parameters = element.parameters if isinstance(element, ElementDefinition) else element.parameter_overrides
            for parameter in parameters:
                if parameter.iid not in mapped:
                    continue
                if parameter.original is None:
                    transaction.create(parameter)
                else:
                    transaction.create_or_update(parameter)
                for value_set in parameter.value_sets:
                    transaction.create_or_update(value_set)

        self.mapping.store.persist(transaction, iteration)
        self.hub_mapping = None

    # --- Hub -> Workspace ---

    def map_to_workspace(self, rows: Iterable[ParameterToVariableMapping]) -> List[ParameterToVariableMapping]:
        result = HubToWorkspaceRule().transform(rows)
        self.workspace_mapping = [row for row in result if row.is_valid]

        skipped = len(result) - len(self.workspace_mapping)
        if skipped:
            logger.warning(f"{skipped} hub value(s) have no valid workspace target and were left out.")
        return list(self.workspace_mapping)

    def transfer_to_workspace(self) -> None:
        """
        Push every preview into the workspace. A leaf updates its owner's cell;
        each touched owner is put once, after all its cells are written.

        All previews are computed before the first put, so a value set that
        cannot be converted leaves the workspace untouched.
        """
        values = [row.preview.value if row.preview is not None else None for row in self.workspace_mapping]
        owners: Dict[str, WorkspaceVariable] = {}

        for row, value in zip(self.workspace_mapping, values):
            variable = row.selected_variable
            if value is None:
                logger.warning(f"No value to transfer to '{variable.name}'.")
                continue

            if variable.is_leaf:
                leaf = self.find_variable(variable.name)
                owner = self.find_variable(variable.parent_name)
                if leaf is None or owner is None:
                    logger.warning(f"'{variable.name}' is not part of this session; skipping.")
                    continue
                if leaf.set_value(value):
                    owners[owner.name] = owner
                continue

            variable.value = value
            self.connector.put_variable(variable)
            self._replace_session_value(variable.name, value)

        for owner in owners.values():
            self.connector.put_variable(owner)

        self.mapping.store.add_many(self.workspace_mapping)
        logger.info(f"Transferred {len(self.workspace_mapping)} value(s) to the workspace.")
        self.workspace_mapping = []

    def _replace_session_value(self, name: str, value) -> None:
        session = self.find_variable(name)
        if session is None:
            return

        stale = {child.name for child in session.children}
        session.value = value
        self.variables = [v for v in self.variables if v.name not in stale]
        if session.is_array:
            index = self.variables.index(session)
            self.variables[index + 1:index + 1] = session.unwrap()
