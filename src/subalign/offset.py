"""
Constant-offset correction of subtitle timelines and overlap repair.
"""
from enum import Enum
from typing import List, Tuple

from .errors import OverlapFixError
from .logging import get_logger
from .subtitles import Timeline
from .timecode import TimeCode


class OverlapFixMode( Enum ):
    """
    How to resolve a cue that starts before the previous one ends.

    BEFORE moves the later cue's start to the previous cue's end.
    AFTER moves the previous cue's end to the later cue's start.
    """

    BEFORE = "before";
    AFTER = "after";


class ShiftEngine:
    """
    Apply a constant time offset to every cue of a timeline.

    Features:
    - Pure: returns a new Timeline, the input is untouched
    - Start and end of each cue shifted independently
    - Underflow clamps start to zero while keeping the cue's duration
    - No reordering and no overlap correction
    """

    def __init__( self ):
        self.logger = get_logger();
        self.clamped_count = 0;  # Cues clamped at zero by the last shift

    def shift( self, timeline: Timeline, delta_ms: int ) -> Timeline:
        """
        Shift every cue by delta_ms milliseconds.

        Args:
            timeline: Timeline to shift
            delta_ms: Signed offset in milliseconds

        Returns:
            New Timeline with the same cues, order and text
        """
        cues = [];
        self.clamped_count = 0;

        for cue in timeline:
            if cue.start.milliseconds + delta_ms >= 0:
                applied = delta_ms;
            else:
                # Clamp start at zero and move end by the same amount
                applied = -cue.start.milliseconds;
                self.clamped_count += 1;

            cues.append( cue.retimed( cue.start.add( applied ), cue.end.add( applied ) ) );

        if self.clamped_count:
            self.logger.warning( f"{self.clamped_count} cue(s) would start before 00:00:00,000 and were clamped to zero" );
        self.logger.info( f"Shifted {len( cues )} subtitle entries by {delta_ms}ms" );

        return Timeline( cues );


def shift_timeline( timeline: Timeline, delta_ms: int ) -> Timeline:
    """Convenience wrapper around ShiftEngine.shift."""
    return ShiftEngine().shift( timeline, delta_ms );


def find_overlaps( timeline: Timeline ) -> List[int]:
    """
    Positions of cues that start before the previous cue ends.

    Returns:
        0-based positions i >= 1 where cue[i].start < cue[i-1].end
    """
    return [
        position for position in range( 1, len( timeline ) )
        if timeline[position].start < timeline[position - 1].end
    ];


def has_overlap( timeline: Timeline ) -> bool:
    return bool( find_overlaps( timeline ) );


def fix_overlaps( timeline: Timeline, mode: OverlapFixMode ) -> Timeline:
    """
    Resolve overlapping neighbours according to mode.

    Every fix is planned against the input and validated before any is
    applied, so either all overlaps are fixed or nothing changes.
    Zero-duration results are valid.

    Raises:
        OverlapFixError: if a fix would give a cue a negative duration
    """
    logger = get_logger();
    overlaps = find_overlaps( timeline );
    if not overlaps:
        return timeline;

    # (position, new time, is start)
    plan: List[Tuple[int, TimeCode, bool]] = [];

    for position in overlaps:
        previous = timeline[position - 1];
        current = timeline[position];

        if mode is OverlapFixMode.BEFORE:
            new_start = previous.end;
            if new_start > current.end:
                raise OverlapFixError(
                    position,
                    f"moving start to {new_start} would pass its end {current.end}"
                );
            plan.append( ( position, new_start, True ) );
        else:
            new_end = current.start;
            if new_end < previous.start:
                raise OverlapFixError(
                    position - 1,
                    f"moving end to {new_end} would precede its start {previous.start}"
                );
            plan.append( ( position - 1, new_end, False ) );

    cues = list( timeline );
    for position, new_time, is_start in plan:
        cue = cues[position];
        if is_start:
            cues[position] = cue.retimed( new_time, cue.end );
        else:
            cues[position] = cue.retimed( cue.start, new_time );

    logger.info( f"Fixed {len( plan )} overlapping subtitle entries ({mode.value} mode)" );
    return Timeline( cues );
