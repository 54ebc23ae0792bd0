"""
Parent-student relationship repository.

Answers "which students is this parent linked to?" so a parent's purchases can
be restricted to their own children.
"""

from __future__ import annotations

from typing import FrozenSet

from repositories.client import get_supabase

_PARENT_STUDENTS_TABLE: str = "parent_students"


def list_child_ids(parent_id: str) -> FrozenSet[str]:
    """
    Retrieve the ids of every student linked to a parent.

    Returns:
        frozenset of student ids (possibly empty)
    """
    response = (
        get_supabase()
        .table(_PARENT_STUDENTS_TABLE)
        .select("student_id")
        .eq("parent_id", str(parent_id))
        .execute()
    )

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to list children for parent {parent_id}: {error}")

    rows = getattr(response, "data", None) or []
    return frozenset(str(row["student_id"]) for row in rows if row.get("student_id") is not None)


__all__ = ["list_child_ids"]
