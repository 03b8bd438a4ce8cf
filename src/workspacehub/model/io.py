"""
Mapping Archive (HDF5)
Saves an ExternalIdentifierMap to a local .h5 file and loads it back, so a
mapping can be moved between hub models or kept next to a workspace script.
"""
import json
import logging
import uuid
from importlib.metadata import version, PackageNotFoundError
from typing import Optional

import h5py
import numpy as np

from workspacehub.config import ARCHIVE_SIZE_LIMIT
from workspacehub.model.hub import ExternalIdentifierMap, IdCorrespondence

# Get module logger
logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("workspacehub")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"


def _as_str(value) -> str:
    # HDF5 may hand back bytes or numpy scalars
    if isinstance(value, bytes):
        return value.decode('utf-8')
    if hasattr(value, 'item'):
        return str(value.item())
    return str(value)


def _as_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    return uuid.UUID(value) if value else None


class MappingArchive:
    @staticmethod
    def save_map(mapping: ExternalIdentifierMap, filepath: str) -> None:
        logger.info(f"Saving mapping '{mapping.name}' to: {filepath}")
        try:
            with h5py.File(filepath, "w") as f:
                f.attrs["version"] = APP_VERSION
                f.attrs["name"] = mapping.name
                f.attrs["external_tool_name"] = mapping.external_tool_name
                f.attrs["external_model_name"] = mapping.external_model_name
                if mapping.iid is not None:
                    f.attrs["iid"] = str(mapping.iid)

                grp = f.create_group("correspondences")
                grp.attrs["count"] = len(mapping.correspondences)

                rows = [
                    {
                        "iid": str(c.iid) if c.iid is not None else None,
                        "internal_thing": str(c.internal_thing) if c.internal_thing is not None else None,
                        "external_id": c.external_id,
                    }
                    for c in mapping.correspondences
                ]
                rows_json = json.dumps(rows)

                # Use dataset if data exceeds HDF5 attribute size limit (64KB)
                if len(rows_json) > ARCHIVE_SIZE_LIMIT:
                    logger.info(f"Correspondences are large ({len(rows_json)} bytes), using dataset")
                    grp.create_dataset("correspondences", data=np.void(rows_json.encode('utf-8')))
                else:
                    grp.attrs["correspondences_json"] = rows_json

            logger.info(f"Mapping saved to: {filepath} ({len(rows)} correspondences)")

        except Exception as e:
            logger.exception(f"Failed to save mapping: {e}")
            raise e

    @staticmethod
    def load_map(filepath: str) -> ExternalIdentifierMap:
        logger.info(f"Loading mapping from: {filepath}")
        if not h5py.is_hdf5(filepath):
            msg = f"File '{filepath}' is not a valid HDF5 file."
            logger.error(msg)
            raise ValueError(msg)

        try:
            with h5py.File(filepath, "r") as f:
                file_version = _as_str(f.attrs.get("version", "unknown"))
                mapping = ExternalIdentifierMap(
                    iid=_as_uuid(_as_str(f.attrs["iid"])) if "iid" in f.attrs else None,
                    name=_as_str(f.attrs.get("name", "")),
                    external_tool_name=_as_str(f.attrs.get("external_tool_name", "")),
                    external_model_name=_as_str(f.attrs.get("external_model_name", "")),
                )

                rows_json = None
                if "correspondences" in f:
                    grp = f["correspondences"]
                    if "correspondences" in grp:
                        # Large data stored as dataset
                        rows_json = bytes(grp["correspondences"][()]).decode('utf-8')
                    elif "correspondences_json" in grp.attrs:
                        # Small data stored as attribute
                        rows_json = _as_str(grp.attrs["correspondences_json"])

                for row in json.loads(rows_json) if rows_json else []:
                    mapping.correspondences.append(IdCorrespondence(
                        iid=_as_uuid(row.get("iid")),
                        internal_thing=_as_uuid(row.get("internal_thing")),
                        external_id=row.get("external_id") or "",
                        container=mapping,
                    ))

            logger.debug(
                f"Loaded mapping '{mapping.name}' with {len(mapping.correspondences)} correspondences "
                f"(archive version {file_version})."
            )
            return mapping

        except Exception as e:
            logger.exception(f"Failed to load mapping: {e}")
            raise e

    @staticmethod
    def read_version(filepath: str) -> str:
        with h5py.File(filepath, "r") as f:
            return _as_str(f.attrs.get("version", "unknown"))
