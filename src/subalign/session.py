"""
Interactive alignment session: the request/response state machine a driver (terminal UI or test) talks to.
"""
from enum import Enum
from typing import List, Optional, Set, Tuple

from .align import AlignmentEngine, Anchor
from .errors import AlignmentIncomplete, SessionStateError
from .logging import get_logger
from .subtitles import Cue, Timeline


class SessionState( Enum ):
    SUGGESTING = "suggesting";
    AWAITING_CONFIRMATION = "awaiting_confirmation";
    CONFIRMED = "confirmed";
    COMPUTING = "computing";
    ABORTED = "aborted";


TERMINAL_STATES = ( SessionState.COMPUTING, SessionState.ABORTED );


class InteractiveSession:
    """
    Drives an AlignmentEngine through operator decisions.

    The session owns the engine's anchor set until finish() or abort()
    returns; every change goes through the calls below. Failed calls leave
    the anchors and the state as they were.

    Typical loop:
        pair = session.next_suggestion()
        session.confirm() / session.reject() / session.override_pairing( r, t )
        ...
        timeline = session.finish()
    """

    def __init__( self, engine: AlignmentEngine ):
        self.logger = get_logger();
        self.engine = engine;
        self.state = SessionState.SUGGESTING;
        self.pending: Optional[Tuple[int, int]] = None;  # (reference_index, target_index)
        self.skipped: Set[int] = set();                  # Rejected reference positions

    @property
    def reference( self ) -> Timeline:
        return self.engine.reference;

    @property
    def target( self ) -> Timeline:
        return self.engine.target;

    @property
    def anchors( self ) -> List[Anchor]:
        return list( self.engine.anchors );

    @property
    def is_finished( self ) -> bool:
        return self.state in TERMINAL_STATES;

    def _require( self, *states: SessionState ):
        if self.state in TERMINAL_STATES:
            raise SessionStateError( f"session is already {self.state.value}" );
        if states and self.state not in states:
            expected = ", ".join( state.value for state in states );
            raise SessionStateError( f"not allowed while {self.state.value} (expected {expected})" );

    def _pair_cues( self, pair: Tuple[int, int] ) -> Tuple[Cue, Cue]:
        reference_index, target_index = pair;
        return self.reference[reference_index], self.target[target_index];

    def next_suggestion( self ) -> Optional[Tuple[Cue, Cue]]:
        """
        Propose the next (reference cue, target cue) pair.

        While a suggestion is pending the same pair is returned again.

        Returns:
            The pair, or None when the policy has nothing left to suggest
        """
        self._require( SessionState.SUGGESTING, SessionState.AWAITING_CONFIRMATION, SessionState.CONFIRMED );

        if self.state is SessionState.AWAITING_CONFIRMATION and self.pending is not None:
            return self._pair_cues( self.pending );

        pair = self.engine.suggest( self.skipped );
        if pair is None:
            self.pending = None;
            self.state = SessionState.SUGGESTING;
            self.logger.debug( "No more anchor suggestions" );
            return None;

        self.pending = pair;
        self.state = SessionState.AWAITING_CONFIRMATION;
        self.logger.debug( f"Suggesting reference cue {pair[0] + 1} with target cue {pair[1] + 1}" );
        return self._pair_cues( pair );

    def confirm( self, anchor: Optional[Anchor] = None ) -> Anchor:
        """
        Confirm the pending suggestion, or an explicit anchor.

        Raises:
            SessionStateError: no anchor given and nothing pending
            AnchorConflictError: the anchor contradicts the confirmed ones
        """
        if anchor is None:
            self._require( SessionState.AWAITING_CONFIRMATION );
            if self.pending is None:
                raise SessionStateError( "no suggestion is pending" );
            anchor = Anchor( *self.pending );
        else:
            self._require();

        confirmed = self.engine.add_anchor( anchor );
        self.pending = None;
        self.state = SessionState.CONFIRMED;
        return confirmed;

    def reject( self ):
        """Drop the pending pair; its reference cue is not suggested again."""
        self._require( SessionState.AWAITING_CONFIRMATION );
        if self.pending is None:
            raise SessionStateError( "no suggestion is pending" );

        self.skipped.add( self.pending[0] );
        self.logger.debug( f"Rejected suggestion for reference cue {self.pending[0] + 1}" );
        self.pending = None;
        self.state = SessionState.SUGGESTING;

    def override_pairing( self, reference_index: int, target_index: int ) -> Anchor:
        """Pair two cues chosen by the operator (0-based positions) and confirm at once."""
        self._require();
        confirmed = self.engine.anchor_for( reference_index, target_index );
        self.pending = None;
        self.state = SessionState.CONFIRMED;
        return confirmed;

    def undo_last( self ) -> Anchor:
        """Remove the most recently confirmed anchor."""
        self._require();
        if not self.engine.anchors:
            raise SessionStateError( "no confirmed anchor to undo" );

        removed = self.engine.remove_anchor( self.engine.anchors[-1] );
        self.pending = None;
        self.state = SessionState.CONFIRMED if self.engine.anchors else SessionState.SUGGESTING;
        self.logger.debug( f"Undid {removed!r}" );
        return removed;

    def finish( self ) -> Timeline:
        """
        Apply the confirmed anchors to the whole target timeline.

        Raises:
            AlignmentIncomplete: no anchor confirmed (the session stays open)
        """
        self._require();
        if not self.engine.anchors:
            raise AlignmentIncomplete( "no anchors confirmed; confirm at least one pair or abort" );

        self.state = SessionState.COMPUTING;
        self.pending = None;

        stats = self.engine.get_alignment_stats();
        self.logger.info( f"Computing alignment from {stats['anchors']} anchors "
                          f"(offsets {stats['min_offset_ms']}ms to {stats['max_offset_ms']}ms)" );
        return self.engine.apply();

    def abort( self ) -> Timeline:
        """Cancel the session and hand back the untouched target timeline."""
        self._require();
        self.state = SessionState.ABORTED;
        self.pending = None;
        self.logger.info( "Alignment session aborted; target left unchanged" );
        return self.engine.target;
