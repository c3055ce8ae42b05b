"""Annotation state export formatters.

Provides JSON and Markdown export functions for engine state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quorum.schemas.snapshot import StateSnapshot

if TYPE_CHECKING:
    from quorum.engine import AnnotationEngine


def export_json(snapshot: StateSnapshot) -> str:
    """Export a state snapshot as a formatted JSON string.

    Returns:
        Pretty-printed JSON string that ``load_state`` accepts back.
    """
    return snapshot.model_dump_json(indent=2)


def _cell(value: object) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def export_markdown(engine: AnnotationEngine) -> str:
    """Export a human-readable Markdown consensus report.

    One section per bucket with the consensus outcome, the bundle cards
    with their deduplicated tallies, and the merges folded into them.

    Returns:
        Markdown-formatted string.
    """
    lines: list[str] = []
    buckets = engine.get_buckets()

    # Header
    lines.append("# Annotation Consensus Report")
    lines.append("")
    lines.append(f"- **Buckets:** {len(buckets)}")
    lines.append(f"- **Merges:** {len(engine.get_moderation_merges())}")
    annotated = engine.get_annotated_fields()
    if annotated:
        lines.append(f"- **Annotated Fields:** {', '.join(annotated)}")
    closed = engine.get_closed_fields()
    if closed:
        lines.append(f"- **Closed Fields:** {', '.join(closed)}")
    lines.append("")

    for bucket in buckets:
        result = engine.compute_consensus(bucket)
        lines.append(f"## {bucket.field_key} / category {bucket.category_index}")
        lines.append("")
        lines.append(f"- **Status:** {result.status.value.upper()}")
        if result.label:
            lines.append(f"- **Label:** {result.label}")
        lines.append(f"- **Confidence:** {result.confidence:.2f}")
        lines.append(f"- **Voters:** {result.voters}")
        lines.append("")

        cards = engine.get_suggestions(bucket)
        lines.append("| Label | Ontology | Up | Down | Net | Proposed By | Merged |")
        lines.append("|-------|----------|----|------|-----|-------------|--------|")
        for card in cards:
            merged = ", ".join(_cell(m.label) for m in card.merged_from) or "-"
            lines.append(
                f"| {_cell(card.label)} | {_cell(card.ontology_id or '-')} | "
                f"{len(card.upvotes)} | {len(card.downvotes)} | {card.net_votes:+d} | "
                f"@{card.proposed_by} | {merged} |"
            )
        lines.append("")

        notes = [note for card in cards for note in card.merge_notes]
        if notes:
            lines.append("**Merge Notes:**")
            lines.append("")
            for note in notes:
                lines.append(f"- {note}")
            lines.append("")

        duplicates = engine.find_duplicate_suggestions(bucket)
        if duplicates:
            labels = {card.id: card.label for card in cards}
            lines.append("**Possible Duplicates:**")
            lines.append("")
            for group in duplicates:
                lines.append("- " + ", ".join(labels.get(sid, sid) for sid in group))
            lines.append("")

    # Footer
    lines.append("---")
    lines.append("*Generated by Quorum*")
    lines.append("")

    return "\n".join(lines)
