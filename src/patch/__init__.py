"""Edit planning and source write-back."""

from patch.planner import Edit, apply_edits, plan_edit, plan_edits
from patch.writer import read_source, write_source

__all__ = [
    "Edit",
    "apply_edits",
    "plan_edit",
    "plan_edits",
    "read_source",
    "write_source",
]
