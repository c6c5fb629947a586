"""
Workflow controller: file-level shift, reference loading, session setup and safe saving.
"""
import tempfile
from pathlib import Path
from typing import Optional, Union

from .align import AlignmentEngine, SuggestionPolicy
from .backup import BackupManager
from .config import SubAlignConfig
from .logging import get_logger
from .offset import OverlapFixMode, ShiftEngine, find_overlaps, fix_overlaps
from .session import InteractiveSession
from .streams import FfmpegStreamProbe, StreamProbe
from .subtitles import Timeline, read_timeline, write_timeline


SUBTITLE_SUFFIXES = ( ".srt", );


def default_output_path( input_path: Union[str, Path] ) -> Path:
    """<stem>_mod<suffix> beside the input file."""
    input_path = Path( input_path );
    return input_path.with_name( f"{input_path.stem}_mod{input_path.suffix}" );


class SubtitleWorkflow:
    """
    Connects the timing engine to files, media containers and backups.

    Orchestrates:
    1. Reading subtitle files (or extracting them from containers)
    2. Constant shifts with optional overlap repair
    3. Interactive alignment sessions
    4. Backup and atomic write of the result
    """

    def __init__(
        self,
        config: Optional[SubAlignConfig] = None,
        stream_probe: Optional[StreamProbe] = None,
        backup_manager: Optional[BackupManager] = None
    ):
        self.config = config or SubAlignConfig();
        self.logger = get_logger();
        self.stream_probe = stream_probe or FfmpegStreamProbe( self.config.ffmpeg_cmd, self.config.ffprobe_cmd );
        self.backup_manager = backup_manager or BackupManager( self.config.backup_dir );

    def read( self, path: Union[str, Path] ) -> Timeline:
        return read_timeline( path, self.config.encoding, self.config.max_file_bytes );

    def save( self, timeline: Timeline, output: Union[str, Path] ) -> Path:
        """
        Write a timeline, backing up an existing output first when backups are enabled.

        Returns:
            Path written
        """
        output = Path( output );
        if self.config.backup and output.is_file():
            self.backup_manager.create_backup( output );
        return write_timeline( output, timeline, self.config.eol, self.config.encoding );

    def shift_file(
        self,
        input_path: Union[str, Path],
        delta_ms: int,
        output: Optional[Union[str, Path]] = None,
        fix_mode: Optional[OverlapFixMode] = None
    ) -> Path:
        """
        Shift every cue of a subtitle file by delta_ms and save the result.

        Args:
            input_path: SRT file to shift
            delta_ms: Signed offset in milliseconds
            output: Destination (defaults to <stem>_mod<suffix>)
            fix_mode: Overlap repair mode; falls back to the configured one

        Returns:
            Path written
        """
        input_path = Path( input_path );
        output = Path( output ) if output else default_output_path( input_path );

        if fix_mode is None and self.config.overlap_fix:
            fix_mode = OverlapFixMode( self.config.overlap_fix );

        timeline = self.read( input_path );
        shifted = ShiftEngine().shift( timeline, delta_ms );

        if fix_mode is not None:
            shifted = fix_overlaps( shifted, fix_mode );
        else:
            overlaps = find_overlaps( shifted );
            if overlaps:
                self.logger.warning( f"{len( overlaps )} overlapping cue(s) left as they are "
                                     f"(first at cue {overlaps[0] + 1}); use --fix-overlap to repair" );

        return self.save( shifted, output );

    def extract_stream(
        self,
        container: Union[str, Path],
        stream_index: Optional[int] = None,
        output: Optional[Union[str, Path]] = None
    ) -> Path:
        """
        Extract a subtitle stream from a video container to an SRT file.

        Default output: <container stem>.srt, or <container stem>.<index>.srt for an explicit stream.
        """
        container = Path( container );
        if output is None:
            name = container.stem if stream_index is None else f"{container.stem}.{stream_index}";
            output = container.with_name( f"{name}.srt" );
        output = Path( output );

        if self.config.backup and output.is_file():
            self.backup_manager.create_backup( output );
        return self.stream_probe.extract( container, stream_index, output );

    def load_reference( self, source: Union[str, Path], stream_index: Optional[int] = None ) -> Timeline:
        """
        Load the reference timeline from an SRT file or a video container.

        Containers (any non-SRT path, or any path with a stream index) are
        extracted into a temporary directory that is removed afterwards.
        """
        source = Path( source );
        if stream_index is None and source.suffix.lower() in SUBTITLE_SUFFIXES:
            return self.read( source );

        with tempfile.TemporaryDirectory( prefix="subalign-" ) as temp_dir:
            extracted = self.stream_probe.extract( source, stream_index, Path( temp_dir ) / "reference.srt" );
            return self.read( extracted );

    def start_session(
        self,
        reference: Timeline,
        target: Timeline,
        policy: Optional[SuggestionPolicy] = None
    ) -> InteractiveSession:
        """Create an alignment session re-timing target into reference's time base."""
        self.logger.info( f"Starting alignment session: {len( reference )} reference cues, {len( target )} target cues" );
        return InteractiveSession( AlignmentEngine( reference, target, policy ) );
