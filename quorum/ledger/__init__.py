"""Record owners: suggestions, their votes and their comments."""

from quorum.ledger.comments import CommentThread
from quorum.ledger.suggestions import SuggestionStore, normalize_markers
from quorum.ledger.votes import VoteLedger

__all__ = [
    "CommentThread",
    "SuggestionStore",
    "VoteLedger",
    "normalize_markers",
]
