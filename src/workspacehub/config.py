"""
Configuration & Global Constants
================================
This module serves as the central registry for names and defaults shared by
the mapping engine.

Why is this file needed?
------------------------
1. Identity: The tool name written into every persisted mapping map must be
   the same everywhere, otherwise a later session cannot find its own maps.
2. Defaults: Placeholder values and identifier suffixes are used by both
   transfer directions and have to agree.

Exports:
    TOOL_NAME (str): Name stamped on every ExternalIdentifierMap we create.
    DEFAULT_IDENTIFIER_SUFFIX (str): Suffix of '<name>-<suffix>' identifiers.
    PLACEHOLDER_VALUE (str): Hub placeholder for "no value yet".
"""
import os
from pathlib import Path

TOOL_NAME: str = "WorkspaceHub"

DEFAULT_IDENTIFIER_SUFFIX: str = "workspace"

PLACEHOLDER_VALUE: str = "-"

# Local mapping archives (HDF5)
ARCHIVE_EXTENSION: str = ".h5"
ARCHIVE_SIZE_LIMIT: int = 60000  # HDF5 attributes are capped at 64KB


def get_archive_dir() -> str:
    """
    Get the directory where mapping archives are exported by default.
    Honours the WORKSPACEHUB_HOME environment variable.
    """
    home = os.environ.get("WORKSPACEHUB_HOME")
    if home:
        return home

    return os.path.join(str(Path.home()), ".workspacehub")
