"""
Timestamped backups of subtitle files before they are overwritten, with size-based retention.
"""
import glob
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import SubtitleIOError
from .logging import get_logger


TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%f";
TIMESTAMP_LENGTH = len( "2000-01-01T00-00-00-000000" );


class BackupManager:
    """
    Copies a file about to be overwritten into a backup directory.

    Retention:
    - Files <150KB: keep up to 50 copies
    - Files ≥150KB: keep up to 25 copies
    - Copies are named <stem>.<ISO-8601 timestamp with microseconds>[-N]<suffix>
    """

    def __init__( self, backup_dir: Optional[Path] = None ):
        self.logger = get_logger();
        self.backup_dir = Path( backup_dir ) if backup_dir else Path( "backup" );

        self.size_threshold = 150 * 1024;  # 150KB
        self.max_small_files = 50;
        self.max_large_files = 25;

    def get_backup_filename( self, original_file: Path, now: Optional[datetime] = None, counter: int = 0 ) -> str:
        """
        Backup name with a filesystem-safe timestamp.

        Args:
            original_file: File being backed up
            now: Timestamp to use, defaults to the current time
            counter: Disambiguates backups made within the same microsecond

        Returns:
            Backup filename
        """
        timestamp = ( now or datetime.now() ).strftime( TIMESTAMP_FORMAT );
        if counter:
            timestamp = f"{timestamp}-{counter}";
        return f"{original_file.stem}.{timestamp}{original_file.suffix}";

    def parse_backup_name( self, original_file: Path, backup_path: Path ) -> Tuple[datetime, int]:
        """
        Timestamp and counter encoded in a backup name.

        Raises:
            ValueError: if the name is not a backup of original_file
        """
        name = backup_path.name;
        prefix = f"{original_file.stem}.";
        suffix = original_file.suffix;
        if not name.startswith( prefix ) or not name.endswith( suffix ):
            raise ValueError( f"not a backup of {original_file.name}" );

        stamp = name[len( prefix ):len( name ) - len( suffix )];
        timestamp = datetime.strptime( stamp[:TIMESTAMP_LENGTH], TIMESTAMP_FORMAT );
        rest = stamp[TIMESTAMP_LENGTH:];
        if not rest:
            return timestamp, 0;
        if rest[0] != "-" or not rest[1:].isascii() or not rest[1:].isdigit():
            raise ValueError( f"unexpected text after timestamp: '{rest}'" );
        return timestamp, int( rest[1:] );

    def get_existing_backups( self, original_file: Path ) -> List[Tuple[Path, datetime, int]]:
        """
        Existing backups of original_file.

        Returns:
            List of (backup_path, timestamp, size_bytes), oldest first
        """
        if not self.backup_dir.is_dir():
            return [];

        # File names such as "Movie [1080p].srt" hold glob metacharacters
        pattern = f"{glob.escape( original_file.stem )}.????-??-??T??-??-??-??????*{glob.escape( original_file.suffix )}";
        backups = [];

        for backup_path in self.backup_dir.glob( pattern ):
            try:
                timestamp, counter = self.parse_backup_name( original_file, backup_path );
                backups.append( ( ( timestamp, counter, backup_path.name ), backup_path, backup_path.stat().st_size ) );
            except ( ValueError, OSError ) as e:
                self.logger.debug( f"Skipping malformed backup file {backup_path}: {e}" );

        backups.sort( key=lambda item: item[0] );
        return [ ( backup_path, order[0], size ) for order, backup_path, size in backups ];

    def apply_retention_policy( self, original_file: Path ) -> int:
        """
        Delete the oldest backups beyond the size-dependent limit.

        Returns:
            Number of backups removed
        """
        backups = self.get_existing_backups( original_file );
        if not backups:
            return 0;

        if original_file.exists():
            current_size = original_file.stat().st_size;
        else:
            current_size = sum( size for _, _, size in backups ) / len( backups );

        max_backups = self.max_small_files if current_size < self.size_threshold else self.max_large_files;
        if len( backups ) <= max_backups:
            return 0;

        removed = 0;
        for backup_path, _, _ in backups[:-max_backups]:
            try:
                backup_path.unlink();
                removed += 1;
                self.logger.debug( f"Removed old backup: {backup_path.name}" );
            except OSError as e:
                self.logger.warning( f"Could not remove backup {backup_path}: {e}" );

        if removed:
            self.logger.info( f"Removed {removed} old backup(s) to enforce retention policy" );
        return removed;

    def create_backup( self, file_path: Path ) -> Path:
        """
        Copy file_path into the backup directory and apply retention.

        An existing backup is never overwritten: a name already taken gets a
        -N counter after the timestamp.

        Raises:
            SubtitleIOError: if the file is missing or the copy fails
        """
        file_path = Path( file_path );
        if not file_path.is_file():
            raise SubtitleIOError( file_path, "file to back up not found" );

        now = datetime.now();
        backup_path = None;
        try:
            self.backup_dir.mkdir( parents=True, exist_ok=True );
            counter = 0;
            while backup_path is None:
                candidate = self.backup_dir / self.get_backup_filename( file_path, now, counter );
                try:
                    # Reserve the name before copying into it
                    with open( candidate, "xb" ):
                        pass;
                    backup_path = candidate;
                except FileExistsError:
                    counter += 1;
            shutil.copy2( file_path, backup_path );
        except OSError as e:
            if backup_path is not None:
                backup_path.unlink( missing_ok=True );
            raise SubtitleIOError( file_path, f"backup failed: {e}" ) from e;

        self.logger.info( f"Created backup: {backup_path.name}" );
        self.apply_retention_policy( file_path );
        return backup_path;
