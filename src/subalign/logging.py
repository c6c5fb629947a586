"""
Logging system for SubAlign with Rich console output and optional rotating log file.
"""
import logging
import shutil
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler


LOG_SIZE_LIMIT = 5 * 1024 * 1024;  # 5MB


class SubAlignLogger:
    """
    Logger for SubAlign with Rich display and optional file logging.

    Features:
    - Rich console output on stderr, so stdout stays clean for data output
    - INFO default, DEBUG with --debug flag
    - File logging with rotation, only when a log directory is configured
    - 5MB size check on startup, rotates if exceeded
    """

    def __init__( self, name: str = "subalign", debug: bool = False, log_dir: Optional[Path] = None ):
        self.name = name;
        self.debug_mode = debug;
        self.console = Console( stderr=True );

        self.logs_dir = Path( log_dir ) if log_dir else None;
        self.log_file = None;

        if self.logs_dir is not None:
            self.logs_dir.mkdir( parents=True, exist_ok=True );
            self.log_file = self.logs_dir / f"{name}.log";
            self._check_and_rotate_on_startup();

        self.logger = self._setup_logger();

    def _check_and_rotate_on_startup( self ):
        """Check log file size on startup and rotate if >5MB."""
        if self.log_file.exists() and self.log_file.stat().st_size > LOG_SIZE_LIMIT:
            timestamp = datetime.now().isoformat().replace( ":", "-" );
            backup_name = self.logs_dir / f"{self.name}.{timestamp}.log";
            shutil.move( str( self.log_file ), str( backup_name ) );

    def _setup_logger( self ):
        """Setup logger with Rich console and file handlers."""
        logger = logging.getLogger( self.name );
        logger.setLevel( logging.DEBUG if self.debug_mode else logging.INFO );
        logger.propagate = False;

        # Clear existing handlers
        for handler in list( logger.handlers ):
            handler.close();
        logger.handlers.clear();

        console_handler = RichHandler(
            console=self.console,
            rich_tracebacks=True,
            show_time=self.debug_mode,
            show_path=self.debug_mode
        );
        console_handler.setLevel( logging.DEBUG if self.debug_mode else logging.INFO );
        console_handler.setFormatter( logging.Formatter( "%(message)s" ) );
        logger.addHandler( console_handler );

        if self.log_file is not None:
            file_handler = RotatingFileHandler(
                self.log_file,
                maxBytes=LOG_SIZE_LIMIT,
                backupCount=5,
                encoding="utf-8"
            );
            file_handler.setLevel( logging.DEBUG );
            file_handler.setFormatter( logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            ) );
            logger.addHandler( file_handler );

        return logger;

    def debug( self, message, **kwargs ):
        """Log debug message."""
        self.logger.debug( message, **kwargs );

    def info( self, message, **kwargs ):
        """Log info message."""
        self.logger.info( message, **kwargs );

    def warning( self, message, **kwargs ):
        """Log warning message."""
        self.logger.warning( message, **kwargs );

    def error( self, message, **kwargs ):
        """Log error message."""
        self.logger.error( message, **kwargs );

    def critical( self, message, **kwargs ):
        """Log critical message."""
        self.logger.critical( message, **kwargs );


# Global logger instance
_logger = None;


def get_logger( debug: bool = False ) -> SubAlignLogger:
    """Get the global SubAlign logger instance."""
    global _logger;
    if _logger is None:
        _logger = SubAlignLogger( debug=debug );
    return _logger;


def setup_logging( debug: bool = False, log_dir: Optional[Path] = None ) -> SubAlignLogger:
    """(Re)configure the global logger, e.g. after CLI flags are known."""
    global _logger;
    _logger = SubAlignLogger( debug=debug, log_dir=log_dir );
    return _logger;
