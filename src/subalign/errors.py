"""
Error taxonomy for SubAlign.

Every failure the timing engine reports derives from SubAlignError so the CLI
can print the error kind and location and exit non-zero.
"""
from pathlib import Path
from typing import Optional


class SubAlignError( Exception ):
    """Base class for all SubAlign errors."""

    @property
    def kind( self ) -> str:
        return type( self ).__name__;


class ConfigError( SubAlignError ):
    """Invalid configuration value (environment, .env file or CLI flag)."""


class FormatError( SubAlignError, ValueError ):
    """Malformed TimeCode text."""

    def __init__( self, text: str, reason: str ):
        self.text = text;
        self.reason = reason;
        super().__init__( f"invalid timecode '{text}': {reason}" );


class ParseError( SubAlignError ):
    """
    Malformed SRT block structure.

    Attributes:
        line_number: 1-based line of the offending line
        block_number: 1-based ordinal of the offending block
        reason: human readable description
        path: file the text came from, when known
    """

    def __init__( self, line_number: int, block_number: int, reason: str, path: Optional[Path] = None ):
        self.line_number = line_number;
        self.block_number = block_number;
        self.reason = reason;
        self.path = path;
        super().__init__( self._render() );

    def _render( self ) -> str:
        location = f"block {self.block_number}, line {self.line_number}";
        if self.path is not None:
            location = f"{self.path}: {location}";
        return f"{location}: {self.reason}";

    def with_path( self, path: Path ) -> "ParseError":
        """Return a copy of this error that names the file it came from."""
        error = ParseError( self.line_number, self.block_number, self.reason, path );
        error.__cause__ = self.__cause__;
        return error;


class SubtitleIOError( SubAlignError ):
    """Unreadable or unwritable subtitle path."""

    def __init__( self, path: Path, reason: str ):
        self.path = Path( path );
        self.reason = reason;
        super().__init__( f"{self.path}: {reason}" );


class OverlapFixError( SubAlignError ):
    """An overlap fix would have produced a cue with negative duration."""

    def __init__( self, position: int, reason: str ):
        self.position = position;
        self.reason = reason;
        super().__init__( f"cannot fix overlap at cue {position + 1}: {reason}" );


class StreamToolError( SubAlignError ):
    """The external media tool failed to list or extract subtitle streams."""

    def __init__( self, container: Path, reason: str ):
        self.container = Path( container );
        self.reason = reason;
        super().__init__( f"{self.container}: {reason}" );


class AlignmentError( SubAlignError ):
    """Base class for failures of an alignment session."""


class AnchorConflictError( AlignmentError ):
    """
    Degenerate or contradictory anchor.

    Carries the target time and the two mapped times in conflict (the existing
    breakpoint's and the rejected one's) when the conflict is between
    breakpoints.
    """

    def __init__( self, reason: str, target_time=None, existing_mapped=None, new_mapped=None ):
        self.reason = reason;
        self.target_time = target_time;
        self.existing_mapped = existing_mapped;
        self.new_mapped = new_mapped;
        super().__init__( reason );


class AlignmentIncomplete( AlignmentError ):
    """The session ended without enough anchors to compute a mapping."""


class SessionStateError( AlignmentError ):
    """A session call was made in a state that does not allow it."""
