"""
CLI entry point for SubAlign with subcommands, .env/environment configuration and exit codes.
"""
import argparse
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console

from . import __version__
from .align import POLICIES, create_policy
from .config import LINE_ENDINGS, OVERLAP_FIX_MODES, SubAlignConfig, load_config
from .errors import FormatError, SubAlignError
from .logging import setup_logging
from .offset import OverlapFixMode
from .streams import STREAM_FORMATS, format_streams
from .sync import SubtitleWorkflow, default_output_path
from .timecode import TimeCode
from .ui import ConsoleUI


def parse_delta( text: str ) -> int:
    """argparse type for --delta."""
    try:
        return TimeCode.parse_delta( text );
    except FormatError as e:
        raise argparse.ArgumentTypeError( str( e ) );


class SubAlignCLI:
    """
    Command line interface for SubAlign.

    Settings come from .env / SUBALIGN_* variables first, then the global
    flags override them.
    """

    def __init__( self, console: Optional[Console] = None, ui: Optional[ConsoleUI] = None ):
        self.parser = self._create_parser();
        self.args = None;
        self.logger = None;
        self.config: Optional[SubAlignConfig] = None;
        self.console = console or Console();
        self.ui = ui or ConsoleUI( console=self.console );

    def _create_parser( self ):
        """Create argument parser with global options and subcommands."""
        parser = argparse.ArgumentParser(
            prog="subalign",
            description="Subtitle timing utility: constant shifts and anchor-based re-timing of SRT files",
            epilog="Environment variables: SUBALIGN_LINE_ENDING, SUBALIGN_ENCODING, SUBALIGN_BACKUP, "
                   "SUBALIGN_BACKUP_DIR, SUBALIGN_LOG_DIR, SUBALIGN_DEBUG, SUBALIGN_FFMPEG, SUBALIGN_FFPROBE"
        );

        parser.add_argument( "--version", action="version", version=f"%(prog)s {__version__}" );
        parser.add_argument(
            "--debug",
            action="store_true",
            default=None,
            help="Enable debug mode with verbose output"
        );
        parser.add_argument(
            "--backup",
            action="store_true",
            default=None,
            help="Back up existing output files before overwriting them"
        );
        parser.add_argument(
            "--line-ending",
            choices=sorted( LINE_ENDINGS ),
            help="Line ending of written SRT files (default: lf)"
        );
        parser.add_argument(
            "--log-dir",
            type=Path,
            help="Also write a rotating log file to this directory"
        );

        subparsers = parser.add_subparsers( dest="command", metavar="COMMAND" );
        subparsers.required = True;

        shift = subparsers.add_parser( "shift", help="Shift every cue of an SRT file by a constant offset" );
        shift.add_argument( "input", type=Path, help="SRT file to shift" );
        shift.add_argument(
            "--delta", "-d",
            required=True,
            type=parse_delta,
            help="Signed offset: milliseconds or [+-]HH:MM:SS,mmm (use --delta=-1000 for negatives)"
        );
        shift.add_argument( "--output", "-o", type=Path, help="Output path (default: <name>_mod.srt)" );
        shift.add_argument(
            "--fix-overlap",
            choices=OVERLAP_FIX_MODES,
            help="Repair overlapping cues after the shift"
        );

        sync = subparsers.add_parser( "sync", help="Interactively re-time TARGET to match REFERENCE" );
        sync.add_argument( "reference", type=Path, help="Reference SRT file or video container" );
        sync.add_argument( "target", type=Path, help="SRT file to re-time" );
        sync.add_argument( "--output", "-o", type=Path, help="Output path (default: <target>_mod.srt)" );
        sync.add_argument(
            "--reference-stream",
            type=int,
            help="Subtitle stream index when REFERENCE is a video container"
        );
        sync.add_argument(
            "--policy",
            choices=sorted( POLICIES ),
            default="proportional",
            help="Anchor suggestion policy (default: proportional)"
        );

        compare = subparsers.add_parser( "compare", help="Page through two SRT files side by side" );
        compare.add_argument( "left", type=Path );
        compare.add_argument( "right", type=Path );
        compare.add_argument( "--page-size", type=int, default=1, help="Cue pairs shown per page (default: 1)" );
        compare.add_argument( "--all", action="store_true", help="Print every pair without prompting" );

        streams = subparsers.add_parser( "streams", help="List subtitle streams of a video container" );
        streams.add_argument( "container", type=Path );
        streams.add_argument( "--format", "-f", choices=STREAM_FORMATS, default="table", dest="output_format" );

        extract = subparsers.add_parser( "extract", help="Extract a subtitle stream from a video container to SRT" );
        extract.add_argument( "container", type=Path );
        extract.add_argument( "--stream", type=int, help="Stream index (default: first subtitle stream)" );
        extract.add_argument( "--output", "-o", type=Path );

        return parser;

    def _validate_arguments( self ):
        """Validate parsed arguments before any file is touched."""
        errors = [];
        args = self.args;

        inputs = {
            "shift": lambda: [ args.input ],
            "sync": lambda: [ args.target ],
            "compare": lambda: [ args.left, args.right ]
        };
        if args.command in inputs:
            for path in inputs[args.command]():
                if not path.exists():
                    errors.append( f"Subtitle file not found: {path}" );

        if args.command == "sync" and not args.reference.exists():
            errors.append( f"Reference not found: {args.reference}" );

        if args.command in ( "streams", "extract" ) and not args.container.exists():
            errors.append( f"Container not found: {args.container}" );

        if args.command == "compare" and args.page_size < 1:
            errors.append( "Page size must be at least 1" );

        return errors;

    def parse_args( self, argv=None, environ=None ):
        """Parse command line arguments, load configuration and validate."""
        self.args = self.parser.parse_args( argv );

        try:
            config = load_config( environ=environ );
            self.config = config.override(
                debug=self.args.debug,
                backup=self.args.backup,
                line_ending=self.args.line_ending,
                log_dir=self.args.log_dir
            );
        except SubAlignError as e:
            self.logger = setup_logging();
            self.logger.error( f"{e.kind}: {e}" );
            sys.exit( 1 );

        self.logger = setup_logging( debug=self.config.debug, log_dir=self.config.log_dir );

        errors = self._validate_arguments();
        if errors:
            self.logger.error( "Configuration errors:" );
            for error in errors:
                self.logger.error( f"  - {error}" );
            sys.exit( 1 );

        self.logger.debug( f"SubAlign v{__version__}: command={self.args.command}, config={self.config}" );
        return self.args;

    def run_shift( self, workflow: SubtitleWorkflow ) -> int:
        fix_mode = OverlapFixMode( self.args.fix_overlap ) if self.args.fix_overlap else None;
        output = workflow.shift_file( self.args.input, self.args.delta, self.args.output, fix_mode );
        self.logger.info( f"Shifted subtitles written to {output}" );
        return 0;

    def run_sync( self, workflow: SubtitleWorkflow ) -> int:
        reference = workflow.load_reference( self.args.reference, self.args.reference_stream );
        target = workflow.read( self.args.target );
        output = self.args.output or default_output_path( self.args.target );

        session = workflow.start_session( reference, target, create_policy( self.args.policy ) );
        result = self.ui.run_session( session );
        if result is None:
            self.logger.warning( "Synchronization aborted by user; no file written" );
            return 1;

        workflow.save( result, output );
        self.logger.info( f"Re-timed subtitles written to {output}" );
        return 0;

    def run_compare( self, workflow: SubtitleWorkflow ) -> int:
        left = workflow.read( self.args.left );
        right = workflow.read( self.args.right );
        self.ui.compare( left, right, page_size=self.args.page_size, interactive=not self.args.all );
        return 0;

    def run_streams( self, workflow: SubtitleWorkflow ) -> int:
        streams = workflow.stream_probe.list_streams( self.args.container );
        rendered = format_streams( streams, self.args.output_format );
        if isinstance( rendered, str ):
            # Plain text for json/list so the output can be piped
            sys.stdout.write( rendered + "\n" );
        else:
            self.console.print( rendered );
        return 0;

    def run_extract( self, workflow: SubtitleWorkflow ) -> int:
        output = workflow.extract_stream( self.args.container, self.args.stream, self.args.output );
        timeline = workflow.read( output );
        self.logger.info( f"Extracted {len( timeline )} subtitle entries to {output}" );
        return 0;

    def run( self, workflow: Optional[SubtitleWorkflow] = None ) -> int:
        """Dispatch the parsed command; returns the exit status."""
        workflow = workflow or SubtitleWorkflow( self.config );
        handlers = {
            "shift": self.run_shift,
            "sync": self.run_sync,
            "compare": self.run_compare,
            "streams": self.run_streams,
            "extract": self.run_extract
        };
        return handlers[self.args.command]( workflow );


def main( argv=None ):
    """Main entry point for the SubAlign CLI."""
    cli = SubAlignCLI();
    cli.parse_args( argv );

    try:
        status = cli.run();
    except KeyboardInterrupt:
        cli.logger.warning( "Interrupted by user" );
        sys.exit( 130 );
    except SubAlignError as e:
        cli.logger.error( f"{e.kind}: {e}" );
        sys.exit( 1 );
    except Exception as e:
        cli.logger.error( f"Unexpected error: {e}" );
        if cli.config.debug:
            raise;
        sys.exit( 1 );

    if status:
        sys.exit( status );


if __name__ == "__main__":
    main();
