"""
Text Utility - display formatting for request rows.

- status labels ("pending" -> "Pending")
- truncation with an ellipsis
- denial reasons split over at most two lines
"""

from typing import List, Optional

DENIAL_REASON_LINE_LENGTH = 80
DENIAL_REASON_TAIL_LENGTH = 40


def status_label(status: str) -> str:
    """Capitalised status for the badge."""
    return status[:1].upper() + status[1:]


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def format_denial_reason(reason: Optional[str]) -> List[str]:
    """
    Split a denial reason for a table cell.

    Short reasons stay on one line. Longer ones break at the first space
    found from ten characters before the middle; the second line is
    truncated. Without such a space the reason is just truncated.

    Returns:
        Zero, one or two display lines.
    """
    if not reason:
        return []
    if len(reason) <= DENIAL_REASON_LINE_LENGTH:
        return [reason]

    mid_point = len(reason) // 2
    break_point = reason.find(" ", max(mid_point - 10, 0))
    if break_point != -1:
        return [
            reason[:break_point],
            truncate_text(reason[break_point + 1:], DENIAL_REASON_TAIL_LENGTH),
        ]
    return [truncate_text(reason, DENIAL_REASON_LINE_LENGTH)]
