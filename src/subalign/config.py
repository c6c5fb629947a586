"""
Configuration loading: .env file, SUBALIGN_* environment variables, CLI overrides.
"""
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

from .errors import ConfigError


LINE_ENDINGS = { "lf": "\n", "crlf": "\r\n" };
OVERLAP_FIX_MODES = ( "before", "after" );

DEFAULT_MAX_FILE_BYTES = 1024 * 1024;  # 1 MiB per subtitle file

_TRUE_VALUES = { "1", "true", "yes", "on" };
_FALSE_VALUES = { "0", "false", "no", "off", "" };


@dataclass
class SubAlignConfig:
    """Runtime settings shared by the workflow, the CLI and the terminal driver."""

    line_ending: str = "lf";                       # Output line ending style: lf or crlf
    encoding: str = "utf-8";                       # Subtitle file text encoding
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES;  # Refuse to read larger subtitle files
    backup: bool = False;                          # Back up files before overwriting them
    backup_dir: Path = field( default_factory=lambda: Path( "backup" ) );
    log_dir: Optional[Path] = None;                # No log file unless configured
    debug: bool = False;
    ffmpeg_cmd: str = "ffmpeg";
    ffprobe_cmd: str = "ffprobe";
    overlap_fix: Optional[str] = None;             # before / after / None

    def __post_init__( self ):
        self.validate();

    @property
    def eol( self ) -> str:
        """The line ending characters for serialized output."""
        return LINE_ENDINGS[self.line_ending];

    def validate( self ):
        """Raise ConfigError on any out-of-range value."""
        if self.line_ending not in LINE_ENDINGS:
            raise ConfigError( f"line ending must be one of {sorted( LINE_ENDINGS )}, got '{self.line_ending}'" );
        if self.max_file_bytes < 1:
            raise ConfigError( f"max file size must be positive, got {self.max_file_bytes}" );
        if self.overlap_fix is not None and self.overlap_fix not in OVERLAP_FIX_MODES:
            raise ConfigError( f"overlap fix mode must be one of {OVERLAP_FIX_MODES}, got '{self.overlap_fix}'" );
        try:
            "".encode( self.encoding );
        except LookupError:
            raise ConfigError( f"unknown text encoding '{self.encoding}'" );

    def override( self, **changes ) -> "SubAlignConfig":
        """Return a copy with the given non-None values replaced."""
        changes = { key: value for key, value in changes.items() if value is not None };
        return replace( self, **changes );


def _parse_bool( name: str, value: str ) -> bool:
    lowered = value.strip().lower();
    if lowered in _TRUE_VALUES:
        return True;
    if lowered in _FALSE_VALUES:
        return False;
    raise ConfigError( f"{name} must be a boolean, got '{value}'" );


def _parse_int( name: str, value: str ) -> int:
    try:
        return int( value.strip() );
    except ValueError:
        raise ConfigError( f"{name} must be an integer, got '{value}'" );


def load_config( env_file: Optional[Path] = None, environ: Optional[dict] = None ) -> SubAlignConfig:
    """
    Build the configuration from a .env file and the process environment.

    Args:
        env_file: .env file to load (defaults to ./.env when it exists)
        environ: mapping to read variables from (defaults to os.environ)

    Returns:
        Validated SubAlignConfig
    """
    if environ is None:
        env_file = Path( env_file ) if env_file else Path( ".env" );
        if env_file.exists():
            load_dotenv( env_file );
        environ = os.environ;

    settings = {};

    if "SUBALIGN_LINE_ENDING" in environ:
        settings["line_ending"] = environ["SUBALIGN_LINE_ENDING"].strip().lower();
    if "SUBALIGN_ENCODING" in environ:
        settings["encoding"] = environ["SUBALIGN_ENCODING"].strip();
    if "SUBALIGN_MAX_FILE_BYTES" in environ:
        settings["max_file_bytes"] = _parse_int( "SUBALIGN_MAX_FILE_BYTES", environ["SUBALIGN_MAX_FILE_BYTES"] );
    if "SUBALIGN_BACKUP" in environ:
        settings["backup"] = _parse_bool( "SUBALIGN_BACKUP", environ["SUBALIGN_BACKUP"] );
    if environ.get( "SUBALIGN_BACKUP_DIR" ):
        settings["backup_dir"] = Path( environ["SUBALIGN_BACKUP_DIR"] );
    if environ.get( "SUBALIGN_LOG_DIR" ):
        settings["log_dir"] = Path( environ["SUBALIGN_LOG_DIR"] );
    if "SUBALIGN_DEBUG" in environ:
        settings["debug"] = _parse_bool( "SUBALIGN_DEBUG", environ["SUBALIGN_DEBUG"] );
    if environ.get( "SUBALIGN_FFMPEG" ):
        settings["ffmpeg_cmd"] = environ["SUBALIGN_FFMPEG"];
    if environ.get( "SUBALIGN_FFPROBE" ):
        settings["ffprobe_cmd"] = environ["SUBALIGN_FFPROBE"];
    if environ.get( "SUBALIGN_OVERLAP_FIX" ):
        settings["overlap_fix"] = environ["SUBALIGN_OVERLAP_FIX"].strip().lower();

    return SubAlignConfig( **settings );
