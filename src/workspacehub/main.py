"""
Command Line Entry Point
========================
Prints a summary of a mapping archived with MappingArchive.

Why is this file needed?
------------------------
Archived mappings are HDF5 files with JSON payloads inside. This command
lets a user check which workspace variables a map links to which hub
identities, without opening a hub session.

Usage:
    python -m workspacehub mapping.h5
    python -m workspacehub mapping.h5 --debug --log-file inspect.log
"""
import argparse
import logging
import sys
from typing import List, Optional

from workspacehub.logging_config import setup_logging
from workspacehub.model.external_identifier import ExternalIdentifier
from workspacehub.model.io import MappingArchive


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workspacehub",
        description="Summarize an archived workspace <-> hub mapping.",
    )
    parser.add_argument("archive", help="Path to the .h5 mapping archive")
    parser.add_argument("--debug", action="store_true", help="Log everything")
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")
    return parser


def summarize(archive: str) -> List[str]:
    mapping = MappingArchive.load_map(archive)
    lines = [
        f"Map:     {mapping.name}",
        f"Tool:    {mapping.external_tool_name}",
        f"Model:   {mapping.external_model_name}",
        f"Version: {MappingArchive.read_version(archive)}",
        f"Correspondences: {len(mapping.correspondences)}",
    ]

    for correspondence in mapping.correspondences:
        try:
            payload = ExternalIdentifier.from_json(correspondence.external_id)
        except ValueError:
            lines.append(f"  {correspondence.internal_thing}  <unreadable payload>")
            continue
        lines.append(f"  {correspondence.internal_thing}  {payload.direction.value:<15} {payload.identifier}")

    return lines


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=logging.DEBUG if args.debug else logging.WARNING, log_file=args.log_file)

    try:
        lines = summarize(args.archive)
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print("\n".join(lines))
    return 0


if __name__ == "__main__":
    sys.exit(main())
