"""Submission workflow (bounded-retry state machine)."""

from vrlookup.lookup.workflow import LookupWorkflow

__all__ = ["LookupWorkflow"]
