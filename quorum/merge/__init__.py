"""Moderation merges between equivalent suggestions."""

from quorum.merge.graph import MergeGraph

__all__ = ["MergeGraph"]
