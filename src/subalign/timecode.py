"""
TimeCode: a point in subtitle-stream time, stored as integer milliseconds.
"""
import math
import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Tuple, Union
import pysrt

from .errors import AnchorConflictError, FormatError


MS_PER_SECOND = 1000;
MS_PER_MINUTE = 60 * MS_PER_SECOND;
MS_PER_HOUR = 60 * MS_PER_MINUTE;

# ASCII digits only. Hours unbounded; minutes/seconds 1-2 digits; milliseconds 1-3 digits
TIMECODE_PATTERN = re.compile( r'^(\d+):(\d{1,2}):(\d{1,2}),(\d{1,3})$', re.ASCII );
DELTA_PATTERN = re.compile( r'^([+-]?)(\d+)$', re.ASCII );


def round_half_up( value: Fraction ) -> int:
    """Round a rational value to the nearest integer, halves upward."""
    return math.floor( value + Fraction( 1, 2 ) );


def interpolate( source_a: int, mapped_a: int, source_b: int, mapped_b: int, point: int ) -> Fraction:
    """
    Exact linear interpolation/extrapolation through (source_a, mapped_a) and (source_b, mapped_b).

    Raises:
        AnchorConflictError: if both anchors share the same source time (undefined slope)
    """
    if source_a == source_b:
        raise AnchorConflictError(
            f"anchors share source time {TimeCode( source_a )}; slope is undefined",
            target_time=TimeCode( source_a )
        );
    slope = Fraction( mapped_b - mapped_a, source_b - source_a );
    return mapped_a + ( point - source_a ) * slope;


@dataclass( frozen=True, order=True )
class TimeCode:
    """
    Non-negative millisecond offset from stream start.

    Ordering and equality follow the integer value. Arithmetic never produces
    a negative value: results below zero clamp to zero.
    """

    milliseconds: int;

    def __post_init__( self ):
        if not isinstance( self.milliseconds, int ) or isinstance( self.milliseconds, bool ):
            raise TypeError( f"TimeCode needs an integer millisecond count, got {self.milliseconds!r}" );
        if self.milliseconds < 0:
            raise ValueError( f"TimeCode cannot be negative: {self.milliseconds}ms" );

    @classmethod
    def from_parts( cls, hours: int = 0, minutes: int = 0, seconds: int = 0, milliseconds: int = 0 ) -> "TimeCode":
        return cls( hours * MS_PER_HOUR + minutes * MS_PER_MINUTE + seconds * MS_PER_SECOND + milliseconds );

    @classmethod
    def clamped( cls, milliseconds: int ) -> "TimeCode":
        """Build a TimeCode, clamping negative values to zero."""
        return cls( max( 0, int( milliseconds ) ) );

    @classmethod
    def parse( cls, text: str ) -> "TimeCode":
        """
        Parse SRT timecode text such as '01:02:03,004'.

        Non-canonical but numerically valid text ('1:2:3,4') is accepted; the
        millisecond field is an integer count, so ',4' means 4ms.

        Raises:
            FormatError: when the text does not match HH:MM:SS,mmm or a field is out of range
        """
        match = TIMECODE_PATTERN.match( text.strip() );
        if not match:
            raise FormatError( text, "expected HH:MM:SS,mmm" );

        hours, minutes, seconds, millis = ( int( group ) for group in match.groups() );

        if minutes > 59:
            raise FormatError( text, f"minutes out of range: {minutes}" );
        if seconds > 59:
            raise FormatError( text, f"seconds out of range: {seconds}" );

        return cls.from_parts( hours, minutes, seconds, millis );

    @staticmethod
    def parse_delta( text: str ) -> int:
        """
        Parse a signed shift amount: '-1500', '+250' or '-00:00:01,500'.

        Returns:
            Signed millisecond count
        """
        stripped = text.strip();
        match = DELTA_PATTERN.match( stripped );
        if match:
            sign, digits = match.groups();
            value = int( digits );
            return -value if sign == "-" else value;

        sign = 1;
        if stripped[:1] in ( "+", "-" ):
            sign = -1 if stripped[0] == "-" else 1;
            stripped = stripped[1:];
        try:
            return sign * TimeCode.parse( stripped ).milliseconds;
        except FormatError:
            raise FormatError( text, "expected signed milliseconds or [+-]HH:MM:SS,mmm" );

    @property
    def parts( self ) -> Tuple[int, int, int, int]:
        """(hours, minutes, seconds, milliseconds)"""
        hours, rest = divmod( self.milliseconds, MS_PER_HOUR );
        minutes, rest = divmod( rest, MS_PER_MINUTE );
        seconds, millis = divmod( rest, MS_PER_SECOND );
        return hours, minutes, seconds, millis;

    def to_subrip_time( self ) -> pysrt.SubRipTime:
        return pysrt.SubRipTime.from_ordinal( self.milliseconds );

    def format( self ) -> str:
        """Canonical zero-padded HH:MM:SS,mmm text (hours may exceed two digits)."""
        return str( self.to_subrip_time() );

    def add( self, delta_ms: int ) -> "TimeCode":
        """Shift by a signed millisecond delta, clamping to zero on underflow."""
        return TimeCode.clamped( self.milliseconds + delta_ms );

    def scale( self, factor: Union[Fraction, int] ) -> "TimeCode":
        """Multiply by a rational factor, rounding half up."""
        return TimeCode.clamped( round_half_up( Fraction( factor ) * self.milliseconds ) );

    @staticmethod
    def scale_between( anchor_a: Tuple["TimeCode", "TimeCode"], anchor_b: Tuple["TimeCode", "TimeCode"], point: "TimeCode" ) -> "TimeCode":
        """
        Map a point through the line defined by two (source, mapped) anchors.

        Points outside the anchors are extrapolated along the same line.

        Raises:
            AnchorConflictError: if both anchors have the same source time
        """
        ( source_a, mapped_a ), ( source_b, mapped_b ) = anchor_a, anchor_b;
        value = interpolate(
            source_a.milliseconds, mapped_a.milliseconds,
            source_b.milliseconds, mapped_b.milliseconds,
            point.milliseconds
        );
        return TimeCode.clamped( round_half_up( value ) );

    def __add__( self, delta_ms ):
        if isinstance( delta_ms, int ) and not isinstance( delta_ms, bool ):
            return self.add( delta_ms );
        return NotImplemented;

    def __sub__( self, other ):
        if isinstance( other, TimeCode ):
            return self.milliseconds - other.milliseconds;
        if isinstance( other, int ) and not isinstance( other, bool ):
            return self.add( -other );
        return NotImplemented;

    def __str__( self ):
        return self.format();

    def __repr__( self ):
        return f"TimeCode({self.format()})";
