# events/verification.py
"""
Event stream integrity verification.

Checks that:
1. The global stream_sequence has no gaps (a rolled-back command rolls
   back its counter increment too, so gaps mean lost or deleted rows)
2. Every stored payload still matches its payload_hash
"""

import logging
from typing import Any, Dict, Generator, Optional, Tuple

from events.models import BusinessEvent


logger = logging.getLogger(__name__)


def verify_sequence_continuity(
    start_sequence: int = 0,
    end_sequence: Optional[int] = None,
) -> Generator[Tuple[int, int], None, None]:
    """
    Yield (gap_start, gap_end) for every gap in stream_sequence.
    """
    events = BusinessEvent.objects.filter(stream_sequence__gt=start_sequence)
    if end_sequence is not None:
        events = events.filter(stream_sequence__lte=end_sequence)

    events = events.order_by("stream_sequence").values_list("stream_sequence", flat=True)

    expected = start_sequence + 1
    for seq in events:
        if seq != expected:
            yield (expected, seq - 1)
        expected = seq + 1


def full_integrity_check(verbose: bool = False) -> Dict[str, Any]:
    """
    Perform a full integrity check of the event stream.

    Returns:
        {
            "total_events": int,
            "verified_events": int,
            "payload_errors": list,
            "sequence_gaps": list,
            "is_valid": bool,
        }
    """
    result = {
        "total_events": 0,
        "verified_events": 0,
        "payload_errors": [],
        "sequence_gaps": [],
        "is_valid": True,
    }

    for gap_start, gap_end in verify_sequence_continuity():
        result["sequence_gaps"].append({
            "start": gap_start,
            "end": gap_end,
            "missing_count": gap_end - gap_start + 1,
        })
        result["is_valid"] = False

    events = BusinessEvent.objects.order_by("stream_sequence")
    result["total_events"] = events.count()

    for event in events.iterator():
        if event.verify_payload_integrity():
            result["verified_events"] += 1
            continue
        result["payload_errors"].append({
            "event_id": str(event.id),
            "event_type": event.event_type,
            "stream_sequence": event.stream_sequence,
            "error": "payload hash mismatch",
        })
        result["is_valid"] = False

    if verbose or not result["is_valid"]:
        log = logger.info if result["is_valid"] else logger.error
        log(
            "Event integrity check finished",
            extra={
                "total_events": result["total_events"],
                "payload_errors": len(result["payload_errors"]),
                "sequence_gaps": len(result["sequence_gaps"]),
            },
        )

    return result
