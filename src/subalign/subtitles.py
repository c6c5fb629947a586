"""
Subtitle model and SRT codec: parsing into timelines, serializing back, atomic file I/O.
"""
import contextlib
import io
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union
import pysrt

from .config import DEFAULT_MAX_FILE_BYTES
from .errors import FormatError, ParseError, SubtitleIOError
from .logging import get_logger
from .timecode import TimeCode


INDEX_PATTERN = re.compile( r'^\d+$', re.ASCII );
TIMING_PATTERN = re.compile( r'^(\S+) --> (\S+)$' );
BYTE_ORDER_MARK = "\ufeff";


@dataclass( frozen=True )
class Cue:
    """
    One subtitle entry.

    The sequence index is display metadata only: it is not compared, so two
    cues with the same timing and text are equal whatever their numbering.
    Lines are kept verbatim, styling tags included.
    """

    sequence_index: int = field( compare=False );
    start: TimeCode;
    end: TimeCode;
    lines: Tuple[str, ...];

    def __post_init__( self ):
        if self.end < self.start:
            raise ValueError( f"cue ends before it starts: {self.start} --> {self.end}" );
        if not isinstance( self.lines, tuple ):
            object.__setattr__( self, "lines", tuple( self.lines ) );
        # Blank lines would end the SRT block early
        if not self.lines or any( not line.strip() for line in self.lines ):
            raise ValueError( f"cue needs one or more non-blank text lines, got {self.lines!r}" );

    @property
    def text( self ) -> str:
        return "\n".join( self.lines );

    @property
    def duration( self ) -> int:
        """Duration in milliseconds."""
        return self.end - self.start;

    def retimed( self, start: TimeCode, end: TimeCode ) -> "Cue":
        return replace( self, start=start, end=end );

    def __str__( self ):
        return f"{self.sequence_index}: {self.start} --> {self.end} {self.text!r}";


class Timeline:
    """
    Ordered, immutable sequence of cues in file order.

    The order is never re-sorted by start time; operations that re-time cues
    keep the position of every cue so input and output correspond by index.
    """

    def __init__( self, cues: Iterable[Cue] = () ):
        self._cues = tuple( cues );

    @property
    def cues( self ) -> Tuple[Cue, ...]:
        return self._cues;

    def __len__( self ):
        return len( self._cues );

    def __iter__( self ) -> Iterator[Cue]:
        return iter( self._cues );

    def __getitem__( self, position ):
        if isinstance( position, slice ):
            return Timeline( self._cues[position] );
        return self._cues[position];

    def __eq__( self, other ):
        if not isinstance( other, Timeline ):
            return NotImplemented;
        return self._cues == other._cues;

    def __hash__( self ):
        return hash( self._cues );

    def __repr__( self ):
        return f"Timeline({len( self._cues )} cues)";

    def renumbered( self ) -> "Timeline":
        """Copy with sequence indices 1..n in current order."""
        return Timeline( replace( cue, sequence_index=position ) for position, cue in enumerate( self._cues, 1 ) );

    def span( self ) -> Optional[Tuple[TimeCode, TimeCode]]:
        """(earliest start, latest end), or None for an empty timeline."""
        if not self._cues:
            return None;
        return min( cue.start for cue in self._cues ), max( cue.end for cue in self._cues );


class SubtitleParser:
    """
    Strict SRT parser.

    Parsing is all-or-nothing: one malformed block fails the whole file and
    no partial timeline is returned.
    """

    def __init__( self ):
        self.logger = get_logger();

    @staticmethod
    def normalize( text: str ) -> List[str]:
        """Strip BOM, unify line endings and drop trailing whitespace on every line."""
        if text.startswith( BYTE_ORDER_MARK ):
            text = text[len( BYTE_ORDER_MARK ):];
        text = text.replace( "\r\n", "\n" ).replace( "\r", "\n" );
        return [ line.rstrip() for line in text.split( "\n" ) ];

    def split_blocks( self, lines: List[str] ) -> List[Tuple[int, List[str]]]:
        """
        Group lines into blank-line separated blocks.

        Returns:
            List of (first_line_number, block_lines) with 1-based line numbers
        """
        blocks = [];
        current = [];
        first_line = 0;

        for line_number, line in enumerate( lines, 1 ):
            if not line.strip():
                if current:
                    blocks.append( ( first_line, current ) );
                    current = [];
                continue;
            if not current:
                first_line = line_number;
            current.append( line );

        if current:
            blocks.append( ( first_line, current ) );

        return blocks;

    def parse_block( self, block_number: int, first_line: int, lines: List[str] ) -> Cue:
        """Turn one block into a Cue or raise ParseError pointing at the offending line."""
        index_text = lines[0].strip();
        if not INDEX_PATTERN.match( index_text ):
            raise ParseError( first_line, block_number, f"expected a sequence index, got '{index_text}'" );
        sequence_index = int( index_text );
        if sequence_index < 1:
            raise ParseError( first_line, block_number, f"sequence index must be positive, got {sequence_index}" );

        if len( lines ) < 2:
            raise ParseError( first_line, block_number, "missing timing line" );

        timing_line = lines[1].strip();
        timing_line_number = first_line + 1;
        match = TIMING_PATTERN.match( timing_line );
        if not match:
            raise ParseError( timing_line_number, block_number, f"expected 'START --> END', got '{timing_line}'" );

        try:
            start = TimeCode.parse( match.group( 1 ) );
            end = TimeCode.parse( match.group( 2 ) );
        except FormatError as e:
            raise ParseError( timing_line_number, block_number, str( e ) ) from e;

        if end < start:
            raise ParseError( timing_line_number, block_number, f"end {end} is before start {start}" );

        if len( lines ) < 3:
            raise ParseError( timing_line_number, block_number, "block has no text lines" );

        return Cue( sequence_index=sequence_index, start=start, end=end, lines=tuple( lines[2:] ) );

    def parse( self, text: str ) -> Timeline:
        """
        Parse SRT text into a Timeline.

        Args:
            text: Full SRT document

        Returns:
            Timeline with cues in file order

        Raises:
            ParseError: on the first malformed block
        """
        lines = self.normalize( text );
        blocks = self.split_blocks( lines );

        cues = [
            self.parse_block( block_number, first_line, block_lines )
            for block_number, ( first_line, block_lines ) in enumerate( blocks, 1 )
        ];

        self.logger.debug( f"Parsed {len( cues )} cues from {len( lines )} lines" );
        return Timeline( cues );


class SubtitleSerializer:
    """
    SRT writer built on pysrt's SubRip rendering.

    Cues are renumbered 1..n in output order; every line uses the one
    configured line ending.
    """

    def __init__( self, eol: str = "\n" ):
        self.eol = eol;

    def to_subrip_file( self, timeline: Timeline ) -> pysrt.SubRipFile:
        items = [
            pysrt.SubRipItem(
                index=position,
                start=cue.start.to_subrip_time(),
                end=cue.end.to_subrip_time(),
                text=cue.text
            )
            for position, cue in enumerate( timeline, 1 )
        ];
        return pysrt.SubRipFile( items=items, eol=self.eol );

    def serialize( self, timeline: Timeline ) -> str:
        buffer = io.StringIO();
        self.to_subrip_file( timeline ).write_into( buffer, eol=self.eol );
        return buffer.getvalue();


def parse_srt( text: str ) -> Timeline:
    """Parse SRT text with the default parser."""
    return SubtitleParser().parse( text );


def serialize_srt( timeline: Timeline, eol: str = "\n" ) -> str:
    """Serialize a timeline to SRT text."""
    return SubtitleSerializer( eol ).serialize( timeline );


def read_timeline( path: Union[str, Path], encoding: str = "utf-8", max_bytes: int = DEFAULT_MAX_FILE_BYTES ) -> Timeline:
    """
    Read and parse an SRT file.

    Args:
        path: SRT file
        encoding: Text encoding of the file
        max_bytes: Refuse files larger than this

    Raises:
        SubtitleIOError: missing, unreadable, oversized or undecodable file
        ParseError: malformed content (carries the path)
    """
    logger = get_logger();
    path = Path( path );

    if not path.is_file():
        raise SubtitleIOError( path, "not found or not a regular file" );

    try:
        with open( path, "rb" ) as handle:
            raw = handle.read( max_bytes + 1 );
    except OSError as e:
        raise SubtitleIOError( path, f"read failed: {e.strerror or e}" ) from e;

    if len( raw ) > max_bytes:
        raise SubtitleIOError( path, f"file is larger than {max_bytes} bytes" );

    try:
        text = raw.decode( encoding );
    except UnicodeDecodeError as e:
        raise SubtitleIOError( path, f"not valid {encoding} text ({e.reason} at byte {e.start})" ) from e;

    logger.info( f"Parsing subtitle file: {path}" );
    try:
        timeline = SubtitleParser().parse( text );
    except ParseError as e:
        raise e.with_path( path ) from e.__cause__;

    logger.info( f"Parsed {len( timeline )} subtitle entries" );
    return timeline;


def _default_file_mode() -> int:
    umask = os.umask( 0 );
    os.umask( umask );
    return 0o666 & ~umask;


def write_timeline( path: Union[str, Path], timeline: Timeline, eol: str = "\n", encoding: str = "utf-8" ) -> Path:
    """
    Serialize a timeline and write it atomically.

    The text goes to a temporary file beside the target, which then replaces
    the target in one rename. On failure the temporary file is removed and the
    target is left exactly as it was.

    Raises:
        SubtitleIOError: if the destination cannot be written
    """
    logger = get_logger();
    path = Path( path );
    text = SubtitleSerializer( eol ).serialize( timeline );

    directory = path.parent;
    if not directory.is_dir():
        raise SubtitleIOError( path, "destination directory does not exist" );

    try:
        fd, temp_name = tempfile.mkstemp( prefix=f".{path.name}.", suffix=".tmp", dir=str( directory ) );
    except OSError as e:
        raise SubtitleIOError( path, f"cannot create temporary file: {e.strerror or e}" ) from e;

    try:
        with os.fdopen( fd, "w", encoding=encoding, newline="" ) as handle:
            handle.write( text );
            handle.flush();
            os.fsync( handle.fileno() );

        if path.exists():
            shutil.copymode( path, temp_name );
        else:
            os.chmod( temp_name, _default_file_mode() );

        os.replace( temp_name, path );
    except ( OSError, UnicodeEncodeError ) as e:
        with contextlib.suppress( FileNotFoundError ):
            os.unlink( temp_name );
        raise SubtitleIOError( path, f"write failed: {e}" ) from e;

    logger.info( f"Wrote {len( timeline )} subtitle entries to {path}" );
    return path;


def clean_subtitle_text( text: str ) -> str:
    """
    Clean subtitle text for comparison.

    Removes HTML/ASS styling tags, bracketed descriptions, speaker labels and
    symbol noise, then lowercases. Used for matching only.
    """
    if not text:
        return "";

    # Remove HTML tags and ASS override blocks
    text = re.sub( r'<[^>]+>', '', text );
    text = re.sub( r'\{[^}]*\}', '', text );

    # Remove bracketed descriptions
    text = re.sub( r'\[([^\]]+)\]', '', text );  # [music], [door slams]
    text = re.sub( r'\(([^)]+)\)', '', text );   # (laughter), (whispers)

    # Remove speaker labels (NAME:)
    text = re.sub( r'^[A-Z][A-Z\s]*:', '', text, flags=re.MULTILINE );

    # Remove common subtitle symbols
    text = re.sub( r'[♪♫★►▼→←↑↓]', '', text );

    # Collapse repeated punctuation
    text = re.sub( r'[.]{2,}', '.', text );
    text = re.sub( r'[-]{2,}', '-', text );

    text = re.sub( r'\s+', ' ', text );
    return text.strip().lower();
