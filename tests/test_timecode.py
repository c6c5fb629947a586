"""
Test cases for TimeCode parsing, formatting and arithmetic.
"""
import pytest
from fractions import Fraction
from pathlib import Path
import sys

# Add src directory to path for testing
sys.path.insert( 0, str( Path( __file__ ).parent.parent / "src" ) );

from subalign.errors import AnchorConflictError, FormatError
from subalign.timecode import TimeCode, interpolate, round_half_up


class TestTimeCodeParsing:
    """Parsing and formatting of SRT timecode text."""

    def test_parse_canonical( self ):
        assert TimeCode.parse( "01:02:03,004" ).milliseconds == 3723004;

    def test_parse_non_canonical_formats_canonically( self ):
        timecode = TimeCode.parse( "1:2:3,4" );
        assert timecode.milliseconds == 3723004;
        assert timecode.format() == "01:02:03,004";

    def test_format_round_trip( self ):
        for text in [ "00:00:00,000", "00:59:59,999", "12:34:56,789" ]:
            assert TimeCode.parse( text ).format() == text;

    def test_hours_are_unbounded( self ):
        timecode = TimeCode.from_parts( hours=123, minutes=4, seconds=5, milliseconds=6 );
        assert timecode.format() == "123:04:05,006";
        assert TimeCode.parse( "123:04:05,006" ) == timecode;

    @pytest.mark.parametrize( "text", [
        "",
        "abc",
        "00:00:00.000",
        "00:00:00",
        "00:60:00,000",
        "00:00:60,000",
        "00:00:00,1000",
        "-00:00:01,000",
        "\u0660\u0661:\u0660\u0662:\u0660\u0663,\u0660\u0660\u0664"
    ] )
    def test_parse_rejects_malformed( self, text ):
        with pytest.raises( FormatError ):
            TimeCode.parse( text );

    def test_format_error_is_value_error( self ):
        with pytest.raises( ValueError ):
            TimeCode.parse( "nope" );

    def test_parts( self ):
        assert TimeCode.parse( "02:03:04,005" ).parts == ( 2, 3, 4, 5 );


class TestTimeCodeArithmetic:
    """Ordering, clamping and scaling."""

    def test_negative_construction_rejected( self ):
        with pytest.raises( ValueError ):
            TimeCode( -1 );

    def test_ordering_follows_milliseconds( self ):
        assert TimeCode( 1000 ) < TimeCode( 1001 );
        assert sorted( [ TimeCode( 3 ), TimeCode( 1 ), TimeCode( 2 ) ] ) == [ TimeCode( 1 ), TimeCode( 2 ), TimeCode( 3 ) ];

    def test_add_clamps_to_zero( self ):
        assert TimeCode( 500 ).add( -1000 ) == TimeCode( 0 );
        assert TimeCode( 500 ).add( 250 ) == TimeCode( 750 );

    def test_operators( self ):
        assert TimeCode( 1000 ) + 500 == TimeCode( 1500 );
        assert TimeCode( 1000 ) - 400 == TimeCode( 600 );
        assert TimeCode( 1000 ) - TimeCode( 1500 ) == -500;

    def test_scale_rounds_half_up( self ):
        assert TimeCode( 3 ).scale( Fraction( 1, 2 ) ) == TimeCode( 2 );
        assert TimeCode( 1000 ).scale( Fraction( 25, 24 ) ) == TimeCode( 1042 );

    def test_round_half_up( self ):
        assert round_half_up( Fraction( 5, 2 ) ) == 3;
        assert round_half_up( Fraction( -5, 2 ) ) == -2;
        assert round_half_up( Fraction( 7, 3 ) ) == 2;

    def test_scale_between_interpolates_and_extrapolates( self ):
        anchor_a = ( TimeCode( 10000 ), TimeCode( 10000 ) );
        anchor_b = ( TimeCode( 20000 ), TimeCode( 21000 ) );
        assert TimeCode.scale_between( anchor_a, anchor_b, TimeCode( 15000 ) ) == TimeCode( 15500 );
        assert TimeCode.scale_between( anchor_a, anchor_b, TimeCode( 5000 ) ) == TimeCode( 4500 );
        assert TimeCode.scale_between( anchor_a, anchor_b, TimeCode( 25000 ) ) == TimeCode( 26500 );

    def test_interpolate_rejects_equal_sources( self ):
        with pytest.raises( AnchorConflictError ):
            interpolate( 1000, 1000, 1000, 2000, 1500 );


class TestParseDelta:
    """Signed shift amounts."""

    @pytest.mark.parametrize( "text, expected", [
        ( "1500", 1500 ),
        ( "+250", 250 ),
        ( "-1000", -1000 ),
        ( "-00:00:01,500", -1500 ),
        ( "+00:01:00,000", 60000 ),
        ( "00:00:02,000", 2000 )
    ] )
    def test_valid( self, text, expected ):
        assert TimeCode.parse_delta( text ) == expected;

    @pytest.mark.parametrize( "text", [ "", "1.5", "--100", "-1:2", "-\u0661\u0662" ] )
    def test_invalid( self, text ):
        with pytest.raises( FormatError ):
            TimeCode.parse_delta( text );
