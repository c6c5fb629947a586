"""
Subtitle streams inside video containers: listing with ffprobe and extraction to SRT with ffmpeg.
"""
import json
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, Union
import ffmpeg
from rich.table import Table

from .errors import StreamToolError
from .logging import get_logger


STREAM_FORMATS = ( "json", "table", "list" );
TAG_DURATION_PATTERN = re.compile( r'^(\d+):(\d{2}):(\d{2}(?:\.\d+)?)$', re.ASCII );


@dataclass
class SubtitleStream:
    """Metadata of one subtitle stream in a container."""

    index: int;                         # Absolute stream index in the container
    codec_name: str;
    language: Optional[str] = None;
    title: Optional[str] = None;
    duration_ms: Optional[int] = None;

    def __repr__( self ):
        return f"SubtitleStream(index={self.index}, codec={self.codec_name}, language={self.language or 'N/A'})";


def _stream_duration_ms( stream: dict ) -> Optional[int]:
    """Duration from the stream's 'duration' field, or from a Matroska DURATION tag."""
    if stream.get( "duration" ):
        try:
            return int( round( float( stream["duration"] ) * 1000 ) );
        except ValueError:
            pass;

    tags = stream.get( "tags" ) or {};
    tag_value = tags.get( "DURATION" ) or tags.get( "duration" );
    if tag_value:
        match = TAG_DURATION_PATTERN.match( tag_value.strip() );
        if match:
            hours, minutes, seconds = match.groups();
            return int( round( ( int( hours ) * 3600 + int( minutes ) * 60 + float( seconds ) ) * 1000 ) );
    return None;


def parse_probe_streams( probe: dict ) -> List[SubtitleStream]:
    """Turn ffprobe's JSON output into SubtitleStream records, in stream order."""
    streams = [];
    for stream in probe.get( "streams", [] ):
        if stream.get( "codec_type", "subtitle" ) != "subtitle":
            continue;
        tags = stream.get( "tags" ) or {};
        streams.append( SubtitleStream(
            index=int( stream["index"] ),
            codec_name=stream.get( "codec_name", "unknown" ),
            language=tags.get( "language" ),
            title=tags.get( "title" ),
            duration_ms=_stream_duration_ms( stream )
        ) );
    return streams;


class StreamProbe( ABC ):
    """Lists and extracts subtitle streams of a video container."""

    @abstractmethod
    def list_streams( self, container: Path ) -> List[SubtitleStream]:
        pass;

    @abstractmethod
    def extract( self, container: Path, stream_index: Optional[int], output: Path ) -> Path:
        """Write the stream as SRT to output; None means the first subtitle stream."""
        pass;


class FfmpegStreamProbe( StreamProbe ):
    """StreamProbe backed by the ffprobe/ffmpeg command line tools via ffmpeg-python."""

    def __init__( self, ffmpeg_cmd: str = "ffmpeg", ffprobe_cmd: str = "ffprobe" ):
        self.logger = get_logger();
        self.ffmpeg_cmd = ffmpeg_cmd;
        self.ffprobe_cmd = ffprobe_cmd;

    @staticmethod
    def _error_detail( error: ffmpeg.Error ) -> str:
        stderr = ( error.stderr or b"" ).decode( "utf-8", errors="replace" ).strip();
        return stderr.splitlines()[-1] if stderr else str( error );

    def list_streams( self, container: Path ) -> List[SubtitleStream]:
        """
        Subtitle streams of a container, in stream order.

        Raises:
            StreamToolError: missing container or ffprobe failure
        """
        container = Path( container );
        if not container.is_file():
            raise StreamToolError( container, "container file not found" );

        self.logger.debug( f"Probing subtitle streams: {container}" );
        try:
            probe = ffmpeg.probe( str( container ), cmd=self.ffprobe_cmd, select_streams="s" );
        except ffmpeg.Error as e:
            raise StreamToolError( container, f"ffprobe failed: {self._error_detail( e )}" ) from e;
        except FileNotFoundError as e:
            raise StreamToolError( container, f"'{self.ffprobe_cmd}' not found on PATH" ) from e;

        streams = parse_probe_streams( probe );
        self.logger.info( f"Found {len( streams )} subtitle stream(s) in {container.name}" );
        return streams;

    def extract( self, container: Path, stream_index: Optional[int], output: Path ) -> Path:
        """
        Convert one subtitle stream to an SRT file.

        Raises:
            StreamToolError: missing container, ffmpeg failure or no output produced
        """
        container = Path( container );
        output = Path( output );
        if not container.is_file():
            raise StreamToolError( container, "container file not found" );

        stream_map = "0:s:0" if stream_index is None else f"0:{stream_index}";
        self.logger.info( f"Extracting subtitle stream {stream_map} from {container.name} to {output}" );

        try:
            (
                ffmpeg
                .input( str( container ) )
                .output( str( output ), map=stream_map, **{ "c:s": "srt" } )
                .overwrite_output()
                .run( cmd=self.ffmpeg_cmd, capture_stdout=True, capture_stderr=True )
            );
        except ffmpeg.Error as e:
            raise StreamToolError( container, f"ffmpeg failed on stream {stream_map}: {self._error_detail( e )}" ) from e;
        except FileNotFoundError as e:
            raise StreamToolError( container, f"'{self.ffmpeg_cmd}' not found on PATH" ) from e;

        if not output.is_file():
            raise StreamToolError( container, f"ffmpeg produced no output for stream {stream_map}" );
        return output;


def format_streams( streams: List[SubtitleStream], fmt: str = "table" ) -> Union[str, Table]:
    """
    Render stream metadata.

    Args:
        streams: Streams to show
        fmt: json (pretty JSON text), table (rich Table) or list (one line per stream)
    """
    if fmt == "json":
        return json.dumps( [ asdict( stream ) for stream in streams ], indent=2, ensure_ascii=False );

    if fmt == "table":
        table = Table( title="Subtitle streams" );
        for header in ( "Index", "Codec Name", "Duration(ms)", "Language", "Title" ):
            table.add_column( header );
        for stream in streams:
            table.add_row(
                str( stream.index ),
                stream.codec_name,
                str( stream.duration_ms ) if stream.duration_ms is not None else "N/A",
                stream.language or "N/A",
                stream.title or "N/A"
            );
        return table;

    if fmt == "list":
        return "\n".join(
            f"Index({stream.index}) Codec Name({stream.codec_name}) "
            f"Duration({f'{stream.duration_ms}ms' if stream.duration_ms is not None else 'N/A'}) "
            f"Language({stream.language or 'N/A'}) Title({stream.title or 'N/A'})"
            for stream in streams
        );

    raise ValueError( f"Unknown stream format: {fmt} (choose from {', '.join( STREAM_FORMATS )})" );
