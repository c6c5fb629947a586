"""
Test cases for the Rich terminal driver with scripted operator input.
"""
import io
import pytest
from pathlib import Path
import sys

from rich.console import Console

# Add src directory to path for testing
sys.path.insert( 0, str( Path( __file__ ).parent.parent / "src" ) );

from subalign.align import AlignmentEngine
from subalign.session import InteractiveSession, SessionState
from subalign.subtitles import Cue, Timeline
from subalign.timecode import TimeCode
from subalign.ui import ConsoleUI


def make_timeline( starts, prefix="line" ) -> Timeline:
    return Timeline(
        Cue( position, TimeCode( start ), TimeCode( start + 900 ), ( f"{prefix} {position}", ) )
        for position, start in enumerate( starts, 1 )
    );


def scripted( *commands ):
    """Input function replaying commands, then raising EOFError."""
    remaining = list( commands );

    def read( prompt ):
        if not remaining:
            raise EOFError;
        return remaining.pop( 0 );

    return read;


def make_ui( *commands ):
    buffer = io.StringIO();
    console = Console( file=buffer, width=120, color_system=None );
    return ConsoleUI( console=console, input_func=scripted( *commands ) ), buffer;


@pytest.fixture
def session():
    reference = make_timeline( [ 1000, 2000, 3000 ], prefix="ref" );
    target = make_timeline( [ 1500, 2500, 3500 ], prefix="tgt" );
    return InteractiveSession( AlignmentEngine( reference, target ) );


class TestRunSession:
    """Operator command handling."""

    def test_confirm_and_finish( self, session ):
        ui, buffer = make_ui( "y", "d" );

        result = ui.run_session( session );

        assert result is not None;
        assert result[0].start == TimeCode( 1000 );
        assert session.state is SessionState.COMPUTING;
        assert "ref 1" in buffer.getvalue();
        assert "tgt 1" in buffer.getvalue();

    def test_quit_aborts( self, session ):
        ui, buffer = make_ui( "q" );
        assert ui.run_session( session ) is None;
        assert session.state is SessionState.ABORTED;

    def test_end_of_input_aborts( self, session ):
        ui, _ = make_ui();
        assert ui.run_session( session ) is None;
        assert session.state is SessionState.ABORTED;

    def test_manual_pairing_uses_one_based_numbers( self, session ):
        ui, _ = make_ui( "p 3 3", "d" );
        result = ui.run_session( session );
        assert [ cue.start.milliseconds for cue in result ] == [ 1000, 2000, 3000 ];
        assert session.anchors[0].reference_index == 2;

    def test_errors_are_reported_and_loop_continues( self, session ):
        ui, buffer = make_ui( "d", "p x y", "p 9 1", "p 1", "what", "y", "d" );

        result = ui.run_session( session );

        output = buffer.getvalue();
        assert "AlignmentIncomplete" in output;
        assert "integers" in output;
        assert "IndexError" in output;
        assert "Usage" in output;
        assert result is not None;

    def test_reject_then_undo( self, session ):
        ui, _ = make_ui( "n", "y", "u", "q" );
        assert ui.run_session( session ) is None;
        assert session.skipped == { 0 };
        assert session.anchors == [];


class TestCompare:
    """Side-by-side paging."""

    def test_pages_until_quit( self ):
        left = make_timeline( [ 1000, 2000, 3000, 4000 ], prefix="left" );
        right = make_timeline( [ 1100, 2100, 3100, 4100 ], prefix="right" );
        ui, buffer = make_ui( "2", "q" );

        ui.compare( left, right );

        output = buffer.getvalue();
        assert "left 1" in output and "left 3" in output;
        assert "left 4" not in output;

    def test_invalid_key_retries( self ):
        ui, buffer = make_ui( "x", "n" );
        ui.compare( make_timeline( [ 1000, 2000 ] ), make_timeline( [ 1000, 2000 ] ) );
        assert "invalid key input" in buffer.getvalue();
        assert "line 2" in buffer.getvalue();

    def test_enter_advances_one( self ):
        ui, buffer = make_ui( "", "q" );
        ui.compare( make_timeline( [ 1000, 2000, 3000 ] ), make_timeline( [ 1000, 2000, 3000 ] ) );
        assert "line 2" in buffer.getvalue();
        assert "line 3" not in buffer.getvalue();

    def test_non_interactive_prints_all( self ):
        ui, buffer = make_ui();
        ui.compare( make_timeline( [ 1000, 2000, 3000 ] ), make_timeline( [ 1000 ], prefix="other" ), interactive=False );
        output = buffer.getvalue();
        assert "line 3" in output;
        assert "other 1" in output;
