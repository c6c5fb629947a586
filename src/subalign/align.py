"""
Anchor-based re-timing: breakpoint map, piecewise-linear mapping and anchor suggestion policies.
"""
import bisect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple
import Levenshtein

from .errors import AnchorConflictError
from .logging import get_logger
from .offset import ShiftEngine
from .subtitles import Timeline, clean_subtitle_text
from .timecode import TimeCode


@dataclass( frozen=True )
class Anchor:
    """Operator-verified pairing of a reference cue and a target cue (0-based positions)."""

    reference_index: int;  # Position in the reference timeline
    target_index: int;     # Position in the target timeline
    confirmed: bool = True;

    def __repr__( self ):
        status = "✓" if self.confirmed else "?";
        return f"Anchor({status} ref={self.reference_index + 1}, target={self.target_index + 1})";


@dataclass( frozen=True, order=True )
class Breakpoint:
    """Node of the mapping function: a target time and the reference time it maps to."""

    target_time: TimeCode;
    mapped_time: TimeCode;

    @property
    def offset( self ) -> int:
        """mapped - target, in milliseconds"""
        return self.mapped_time - self.target_time;


class AlignmentMap:
    """
    Piecewise-linear mapping from the target time base into the reference time base.

    Breakpoints are kept sorted, strictly increasing in target time and
    non-decreasing in mapped time. Insertions that would break this are
    rejected with AnchorConflictError and leave the map unchanged.

    Mapping rules:
    - no breakpoint: identity
    - one breakpoint: constant shift by its offset
    - inside a segment: linear interpolation
    - before the first / after the last breakpoint: extrapolation with the
      slope of the first / last segment
    """

    def __init__( self ):
        self._breakpoints: List[Breakpoint] = [];

    @property
    def breakpoints( self ) -> Tuple[Breakpoint, ...]:
        return tuple( self._breakpoints );

    def __len__( self ):
        return len( self._breakpoints );

    def _target_keys( self ) -> List[int]:
        return [ point.target_time.milliseconds for point in self._breakpoints ];

    def check( self, target_time: TimeCode, mapped_time: TimeCode ) -> int:
        """
        Validate a breakpoint without inserting it.

        Returns:
            Insertion position

        Raises:
            AnchorConflictError: duplicate, same target time with another mapped time, or crossing
        """
        keys = self._target_keys();
        position = bisect.bisect_left( keys, target_time.milliseconds );

        if position < len( keys ) and keys[position] == target_time.milliseconds:
            existing = self._breakpoints[position];
            if existing.mapped_time == mapped_time:
                raise AnchorConflictError(
                    f"breakpoint {target_time} -> {mapped_time} is already confirmed",
                    target_time=target_time,
                    existing_mapped=existing.mapped_time,
                    new_mapped=mapped_time
                );
            raise AnchorConflictError(
                f"target time {target_time} is already mapped to {existing.mapped_time}; "
                f"mapping it to {mapped_time} as well leaves the slope undefined",
                target_time=target_time,
                existing_mapped=existing.mapped_time,
                new_mapped=mapped_time
            );

        if position > 0:
            previous = self._breakpoints[position - 1];
            if previous.mapped_time > mapped_time:
                raise AnchorConflictError(
                    f"{target_time} -> {mapped_time} crosses the earlier breakpoint "
                    f"{previous.target_time} -> {previous.mapped_time}",
                    target_time=target_time,
                    existing_mapped=previous.mapped_time,
                    new_mapped=mapped_time
                );

        if position < len( self._breakpoints ):
            following = self._breakpoints[position];
            if following.mapped_time < mapped_time:
                raise AnchorConflictError(
                    f"{target_time} -> {mapped_time} crosses the later breakpoint "
                    f"{following.target_time} -> {following.mapped_time}",
                    target_time=target_time,
                    existing_mapped=following.mapped_time,
                    new_mapped=mapped_time
                );

        return position;

    def add( self, target_time: TimeCode, mapped_time: TimeCode ) -> Breakpoint:
        """Insert a breakpoint in target-time order (see check for the rejections)."""
        position = self.check( target_time, mapped_time );
        breakpoint = Breakpoint( target_time, mapped_time );
        self._breakpoints.insert( position, breakpoint );
        return breakpoint;

    def remove( self, target_time: TimeCode ) -> Breakpoint:
        """Remove the breakpoint at target_time (KeyError if there is none)."""
        keys = self._target_keys();
        position = bisect.bisect_left( keys, target_time.milliseconds );
        if position == len( keys ) or keys[position] != target_time.milliseconds:
            raise KeyError( f"no breakpoint at {target_time}" );
        return self._breakpoints.pop( position );

    def constant_offset( self ) -> Optional[int]:
        """The uniform shift when the map has exactly one breakpoint, else None."""
        if len( self._breakpoints ) == 1:
            return self._breakpoints[0].offset;
        return None;

    def map( self, point: TimeCode ) -> TimeCode:
        """Map a target time into the reference time base."""
        count = len( self._breakpoints );
        if count == 0:
            return point;
        if count == 1:
            return point.add( self._breakpoints[0].offset );

        position = bisect.bisect_right( self._target_keys(), point.milliseconds );
        if position == 0:
            first, second = self._breakpoints[0], self._breakpoints[1];
        elif position >= count:
            first, second = self._breakpoints[-2], self._breakpoints[-1];
        else:
            first, second = self._breakpoints[position - 1], self._breakpoints[position];

        return TimeCode.scale_between(
            ( first.target_time, first.mapped_time ),
            ( second.target_time, second.mapped_time ),
            point
        );


class SuggestionPolicy( ABC ):
    """
    Strategy for proposing the next anchor candidate.

    Policies walk the reference timeline in order, skipping anchored cues and
    cues the operator rejected, and choose a target cue for it. A suggestion
    is a heuristic only; the operator decides.
    """

    name = "base";

    @abstractmethod
    def suggest( self, engine: "AlignmentEngine", skipped: Set[int] ) -> Optional[Tuple[int, int]]:
        """Return (reference_index, target_index) or None when exhausted."""

    def next_reference( self, engine: "AlignmentEngine", skipped: Set[int] ) -> Optional[int]:
        anchored = engine.anchored_reference_indices();
        for reference_index in range( len( engine.reference ) ):
            if reference_index not in anchored and reference_index not in skipped:
                return reference_index;
        return None;

    @staticmethod
    def proportional_distance( reference_index: int, target_index: int, reference_count: int, target_count: int ) -> int:
        """|j/target_count - i/reference_count| scaled to integers."""
        return abs( target_index * reference_count - reference_index * target_count );

    def candidate_targets( self, engine: "AlignmentEngine", reference_index: int ) -> List[int]:
        """
        Unanchored target positions, preferring those the map would accept.

        Falls back to every unanchored target when none would be accepted,
        leaving the conflict for the operator to see on confirmation.
        """
        anchored = engine.anchored_target_indices();
        free = [ index for index in range( len( engine.target ) ) if index not in anchored ];
        acceptable = [ index for index in free if engine.would_accept( reference_index, index ) ];
        return acceptable or free;


class ProportionalPositionPolicy( SuggestionPolicy ):
    """
    Pair the next reference cue with the target cue at the nearest proportional position.

    target_index / target_count ≈ reference_index / reference_count, ties to the lower index.
    """

    name = "proportional";

    def suggest( self, engine: "AlignmentEngine", skipped: Set[int] ) -> Optional[Tuple[int, int]]:
        reference_index = self.next_reference( engine, skipped );
        if reference_index is None:
            return None;

        candidates = self.candidate_targets( engine, reference_index );
        if not candidates:
            return None;

        reference_count = len( engine.reference );
        target_count = len( engine.target );
        target_index = min(
            candidates,
            key=lambda index: ( self.proportional_distance( reference_index, index, reference_count, target_count ), index )
        );
        return reference_index, target_index;


class TextSimilarityPolicy( SuggestionPolicy ):
    """
    Pair the next reference cue with the most similar target text near its proportional position.

    Similarity is the normalized Levenshtein ratio of the cleaned cue texts,
    searched within `window` cues of the proportional position. Ties (and
    texts with nothing left after cleaning) fall back to proximity.
    """

    name = "text";

    def __init__( self, window: int = 10 ):
        if window < 0:
            raise ValueError( f"search window must not be negative, got {window}" );
        self.window = window;
        self.logger = get_logger();

    def similarity( self, reference_text: str, target_text: str ) -> float:
        reference_clean = clean_subtitle_text( reference_text );
        target_clean = clean_subtitle_text( target_text );
        if not reference_clean or not target_clean:
            return 0.0;
        return Levenshtein.ratio( reference_clean, target_clean );

    def suggest( self, engine: "AlignmentEngine", skipped: Set[int] ) -> Optional[Tuple[int, int]]:
        reference_index = self.next_reference( engine, skipped );
        if reference_index is None:
            return None;

        candidates = self.candidate_targets( engine, reference_index );
        if not candidates:
            return None;

        reference_count = len( engine.reference );
        target_count = len( engine.target );

        def distance( index: int ) -> int:
            return self.proportional_distance( reference_index, index, reference_count, target_count );

        center = min( candidates, key=lambda index: ( distance( index ), index ) );
        nearby = [ index for index in candidates if abs( index - center ) <= self.window ];

        reference_text = engine.reference[reference_index].text;
        scored = [ ( self.similarity( reference_text, engine.target[index].text ), index ) for index in nearby ];
        best_score, target_index = max( scored, key=lambda item: ( item[0], -distance( item[1] ), -item[1] ) );

        self.logger.debug( f"Reference cue {reference_index + 1}: best text match is target cue "
                           f"{target_index + 1} (similarity {best_score:.2f})" );
        return reference_index, target_index;


POLICIES = {
    ProportionalPositionPolicy.name: ProportionalPositionPolicy,
    TextSimilarityPolicy.name: TextSimilarityPolicy
};


def create_policy( name: str ) -> SuggestionPolicy:
    """Factory for suggestion policies by name."""
    try:
        return POLICIES[name]();
    except KeyError:
        raise ValueError( f"Unknown suggestion policy: {name} (choose from {', '.join( sorted( POLICIES ) )})" );


class AlignmentEngine:
    """
    Re-time a target timeline into a reference timeline's time base.

    Holds both timelines, the confirmed anchors and the AlignmentMap derived
    from them. Every target cue is re-timed on apply(), not only anchored ones.
    """

    def __init__( self, reference: Timeline, target: Timeline, policy: Optional[SuggestionPolicy] = None ):
        self.logger = get_logger();
        self.reference = reference;
        self.target = target;
        self.policy = policy or ProportionalPositionPolicy();
        self.alignment_map = AlignmentMap();
        self.anchors: List[Anchor] = [];

    def anchored_reference_indices( self ) -> Set[int]:
        return { anchor.reference_index for anchor in self.anchors };

    def anchored_target_indices( self ) -> Set[int]:
        return { anchor.target_index for anchor in self.anchors };

    def breakpoint_times( self, reference_index: int, target_index: int ) -> Tuple[TimeCode, TimeCode]:
        """(target_time, mapped_time) for a pair: both cues' start times."""
        if not 0 <= reference_index < len( self.reference ):
            raise IndexError( f"reference cue {reference_index + 1} does not exist (1-{len( self.reference )})" );
        if not 0 <= target_index < len( self.target ):
            raise IndexError( f"target cue {target_index + 1} does not exist (1-{len( self.target )})" );
        return self.target[target_index].start, self.reference[reference_index].start;

    def _check_pair( self, reference_index: int, target_index: int ) -> Tuple[TimeCode, TimeCode]:
        target_time, mapped_time = self.breakpoint_times( reference_index, target_index );

        if reference_index in self.anchored_reference_indices():
            raise AnchorConflictError( f"reference cue {reference_index + 1} is already anchored" );
        if target_index in self.anchored_target_indices():
            raise AnchorConflictError( f"target cue {target_index + 1} is already anchored" );

        self.alignment_map.check( target_time, mapped_time );
        return target_time, mapped_time;

    def would_accept( self, reference_index: int, target_index: int ) -> bool:
        """True if anchoring this pair would not raise."""
        try:
            self._check_pair( reference_index, target_index );
        except ( AnchorConflictError, IndexError ):
            return False;
        return True;

    def add_anchor( self, anchor: Anchor ) -> Anchor:
        """
        Confirm an anchor and insert its breakpoint.

        Raises:
            IndexError: position outside either timeline
            AnchorConflictError: cue already anchored or breakpoint rejected by the map
        """
        target_time, mapped_time = self._check_pair( anchor.reference_index, anchor.target_index );
        self.alignment_map.add( target_time, mapped_time );

        confirmed = Anchor( anchor.reference_index, anchor.target_index, True );
        self.anchors.append( confirmed );
        self.logger.debug( f"Anchored reference cue {anchor.reference_index + 1} ({mapped_time}) "
                           f"to target cue {anchor.target_index + 1} ({target_time})" );
        return confirmed;

    def anchor_for( self, reference_index: int, target_index: int ) -> Anchor:
        """Confirm the pairing of two cue positions (see add_anchor)."""
        return self.add_anchor( Anchor( reference_index, target_index ) );

    def remove_anchor( self, anchor: Anchor ) -> Anchor:
        """Drop a confirmed anchor and its breakpoint."""
        stored = next( ( item for item in self.anchors
                         if ( item.reference_index, item.target_index ) == ( anchor.reference_index, anchor.target_index ) ), None );
        if stored is None:
            raise KeyError( f"{anchor!r} is not confirmed" );
        target_time, _ = self.breakpoint_times( stored.reference_index, stored.target_index );
        self.alignment_map.remove( target_time );
        self.anchors.remove( stored );
        return stored;

    def suggest( self, skipped: Set[int] ) -> Optional[Tuple[int, int]]:
        return self.policy.suggest( self, skipped );

    def apply( self ) -> Timeline:
        """
        Re-time every target cue through the current map.

        One breakpoint is a constant shift and goes through ShiftEngine, so it
        gives exactly the same result as shifting by that offset. Otherwise
        start and end are mapped independently.
        """
        offset = self.alignment_map.constant_offset();
        if offset is not None:
            self.logger.info( f"Single anchor: applying constant shift of {offset}ms" );
            return ShiftEngine().shift( self.target, offset );

        mapping = self.alignment_map;
        cues = [ cue.retimed( mapping.map( cue.start ), mapping.map( cue.end ) ) for cue in self.target ];
        self.logger.info( f"Re-timed {len( cues )} subtitle entries using {len( mapping )} breakpoints" );
        return Timeline( cues );

    def get_alignment_stats( self ) -> dict:
        """Statistics about the confirmed anchors."""
        if not self.anchors:
            return {};

        offsets = [ point.offset for point in self.alignment_map.breakpoints ];
        return {
            'anchors': len( self.anchors ),
            'min_offset_ms': min( offsets ),
            'max_offset_ms': max( offsets ),
            'avg_offset_ms': sum( offsets ) / len( offsets ),
            'offset_range_ms': max( offsets ) - min( offsets )
        };
