"""Output handling for archive runs."""

from .archive_writer import (
    RUN_REPORT_FILE,
    WORKSPACE_METADATA_FILE,
    WorkspaceMetadataWriter,
    run_folder_path,
    write_run_report,
)

__all__ = [
    "RUN_REPORT_FILE",
    "WORKSPACE_METADATA_FILE",
    "WorkspaceMetadataWriter",
    "run_folder_path",
    "write_run_report",
]
