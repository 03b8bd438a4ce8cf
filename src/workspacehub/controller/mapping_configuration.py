"""
Mapping Configuration Service
=============================
Loads a persisted mapping against the live hub iteration and the live
workspace snapshot, in both directions.

Why is this file needed?
------------------------
1. Orchestration: The correspondence store knows what was mapped; the rules
   know how to transform it. This service selects the map, asks the store to
   rebuild the mapped rows and variables, and feeds them to the two rules.
2. Portability: A map can be exported to a local HDF5 archive and imported
   into another model. An imported map is re-owned by the current domain and
   is only persisted on the next hub write.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional, TYPE_CHECKING

from workspacehub.config import ARCHIVE_EXTENSION, TOOL_NAME, get_archive_dir
from workspacehub.controller.correspondence import CorrespondenceStore
from workspacehub.controller.rules.hub_to_workspace import HubToWorkspaceRule, ParameterToVariableMapping
from workspacehub.controller.rules.workspace_to_hub import WorkspaceToHubResult, WorkspaceToHubRule
from workspacehub.model.hub import ExternalIdentifierMap
from workspacehub.model.io import MappingArchive
from workspacehub.model.variables import WorkspaceVariable

if TYPE_CHECKING:
    from workspacehub.services.connectors import HubConnector

logger = logging.getLogger(__name__)


@dataclass
class LoadedMapping:
    to_dst: Optional[List[ParameterToVariableMapping]] = None
    to_hub: Optional[WorkspaceToHubResult] = None


class MappingConfigurationService:
    def __init__(self, hub: HubConnector, store: Optional[CorrespondenceStore] = None) -> None:
        self.hub = hub
        self.store = store if store is not None else CorrespondenceStore(hub)

    @property
    def external_identifier_map(self) -> Optional[ExternalIdentifierMap]:
        return self.store.external_identifier_map

    def _tool_maps(self) -> List[ExternalIdentifierMap]:
        iteration = self.hub.open_iteration
        if iteration is None:
            return []
        return [m for m in iteration.external_identifier_maps if m.external_tool_name == TOOL_NAME]

    def available_map_names(self) -> List[str]:
        return [m.name for m in self._tool_maps()]

    def select_map(self, name: str) -> ExternalIdentifierMap:
        """Use the persisted map called 'name', or start an empty one."""
        existing = next((m for m in self._tool_maps() if m.name == name), None)

        if existing is not None:
            logger.info(f"Using persisted mapping '{name}' ({len(existing.correspondences)} correspondences).")
            self.store.external_identifier_map = existing.clone()
        else:
            logger.info(f"No persisted mapping '{name}'; starting an empty one.")
            self.store.external_identifier_map = self.store.create_external_identifier_map(name)

        return self.store.external_identifier_map

    def load(self, variables: Iterable[WorkspaceVariable]) -> LoadedMapping:
        """
        Replay the selected map on the given workspace variables.
        A direction with nothing to load stays None.
        """
        variables = list(variables)
        loaded = LoadedMapping()

        rows = self.store.load_to_dst(variables)
        if rows:
            loaded.to_dst = HubToWorkspaceRule().transform(rows)

        mapped_variables = self.store.load_to_hub(variables)
        if mapped_variables:
            loaded.to_hub = WorkspaceToHubRule(self.hub, self.store).transform(mapped_variables)

        return loaded

    # --- Local archives ---

    def export_map(self, filepath: Optional[str] = None) -> str:
        """Write the selected map to an archive; defaults to '<archive dir>/<map name>.h5'."""
        mapping = self.store.external_identifier_map
        if mapping is None:
            raise ValueError("No external identifier map is selected.")

        if filepath is None:
            archive_dir = get_archive_dir()
            os.makedirs(archive_dir, exist_ok=True)
            filepath = os.path.join(archive_dir, f"{mapping.name}{ARCHIVE_EXTENSION}")

        MappingArchive.save_map(mapping, filepath)
        return filepath

    def import_map(self, filepath: str) -> ExternalIdentifierMap:
        mapping = MappingArchive.load_map(filepath)

        mapping.iid = None
        mapping.owner = self.hub.current_domain_of_expertise
        mapping.external_tool_name = TOOL_NAME
        for correspondence in mapping.correspondences:
            correspondence.iid = None

        self.store.external_identifier_map = mapping
        logger.info(f"Imported mapping '{mapping.name}' from {filepath}.")
        return mapping
