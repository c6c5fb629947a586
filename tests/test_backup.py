"""
Test cases for timestamped backups and retention.
"""
import re
import pytest
from datetime import datetime
from pathlib import Path
import sys

# Add src directory to path for testing
sys.path.insert( 0, str( Path( __file__ ).parent.parent / "src" ) );

from subalign.backup import BackupManager
from subalign.errors import SubtitleIOError


def make_backups( backup_dir: Path, name: str, stamps ):
    backup_dir.mkdir( exist_ok=True );
    stem, suffix = name.rsplit( ".", 1 );
    for stamp in stamps:
        ( backup_dir / f"{stem}.{stamp}.{suffix}" ).write_text( "x" );


class TestBackupManager:
    """Backup naming, creation and retention policy."""

    def test_backup_filename( self, tmp_path ):
        manager = BackupManager( tmp_path / "backup" );
        name = manager.get_backup_filename( Path( "movie.srt" ), now=datetime( 2024, 3, 5, 14, 7, 9, 123456 ) );
        assert name == "movie.2024-03-05T14-07-09-123456.srt";

    def test_backup_filename_with_counter( self, tmp_path ):
        manager = BackupManager( tmp_path / "backup" );
        name = manager.get_backup_filename( Path( "movie.srt" ), now=datetime( 2024, 3, 5, 14, 7, 9 ), counter=2 );
        assert name == "movie.2024-03-05T14-07-09-000000-2.srt";

    def test_create_backup_copies_file( self, tmp_path ):
        source = tmp_path / "movie.srt";
        source.write_text( "content" );
        manager = BackupManager( tmp_path / "backup" );

        backup_path = manager.create_backup( source );

        assert backup_path.parent == tmp_path / "backup";
        assert backup_path.read_text() == "content";
        assert re.match( r"movie\.\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{6}(-\d+)?\.srt$", backup_path.name );

    def test_missing_file( self, tmp_path ):
        with pytest.raises( SubtitleIOError ):
            BackupManager( tmp_path / "backup" ).create_backup( tmp_path / "missing.srt" );

    def test_consecutive_backups_are_kept( self, tmp_path ):
        output = tmp_path / "out.srt";
        manager = BackupManager( tmp_path / "backup" );

        output.write_text( "v1" );
        first = manager.create_backup( output );
        output.write_text( "v2" );
        second = manager.create_backup( output );

        assert first != second;
        assert first.read_text() == "v1";
        assert second.read_text() == "v2";
        assert [ path for path, _, _ in manager.get_existing_backups( output ) ] == [ first, second ];

    def test_same_timestamp_gets_counter( self, tmp_path, monkeypatch ):
        source = tmp_path / "out.srt";
        source.write_text( "v1" );
        manager = BackupManager( tmp_path / "backup" );
        frozen = datetime( 2024, 3, 5, 14, 7, 9, 500 );

        class FrozenDatetime( datetime ):
            @classmethod
            def now( cls, tz=None ):
                return frozen;

        monkeypatch.setattr( "subalign.backup.datetime", FrozenDatetime );

        first = manager.create_backup( source );
        source.write_text( "v2" );
        second = manager.create_backup( source );

        assert first.name == "out.2024-03-05T14-07-09-000500.srt";
        assert second.name == "out.2024-03-05T14-07-09-000500-1.srt";
        assert first.read_text() == "v1";
        assert [ path for path, _, _ in manager.get_existing_backups( source ) ] == [ first, second ];

    def test_bracketed_file_name( self, tmp_path ):
        source = tmp_path / "Movie [1080p].srt";
        source.write_text( "content" );
        manager = BackupManager( tmp_path / "backup" );

        backup_path = manager.create_backup( source );

        backups = manager.get_existing_backups( source );
        assert [ path for path, _, _ in backups ] == [ backup_path ];

    def test_bracketed_file_name_retention( self, tmp_path ):
        source = tmp_path / "Movie [1080p].srt";
        source.write_text( "small file" );
        backup_dir = tmp_path / "backup";
        make_backups( backup_dir, source.name, [ f"2024-01-0{day}T00-00-00-000000" for day in range( 1, 4 ) ] );
        ( backup_dir / "Movie 1.2024-01-01T00-00-00-000000.srt" ).write_text( "x" );

        manager = BackupManager( backup_dir );
        manager.max_small_files = 1;

        assert manager.apply_retention_policy( source ) == 2;
        assert sorted( path.name for path in backup_dir.iterdir() ) == [
            "Movie 1.2024-01-01T00-00-00-000000.srt",
            "Movie [1080p].2024-01-03T00-00-00-000000.srt"
        ];

    def test_existing_backups_sorted_oldest_first( self, tmp_path ):
        backup_dir = tmp_path / "backup";
        make_backups( backup_dir, "movie.srt", [
            "2024-01-02T00-00-00-000000",
            "2023-12-31T23-59-59-999999",
            "2024-01-01T12-00-00-000000-1",
            "2024-01-01T12-00-00-000000"
        ] );
        make_backups( backup_dir, "other.srt", [ "2024-01-01T12-00-00-000000" ] );
        ( backup_dir / "movie.2024-01-01T12-00-00-000000.en.srt" ).write_text( "x" );

        backups = BackupManager( backup_dir ).get_existing_backups( Path( "movie.srt" ) );

        assert [ path.name for path, _, _ in backups ] == [
            "movie.2023-12-31T23-59-59-999999.srt",
            "movie.2024-01-01T12-00-00-000000.srt",
            "movie.2024-01-01T12-00-00-000000-1.srt",
            "movie.2024-01-02T00-00-00-000000.srt"
        ];

    def test_retention_removes_oldest( self, tmp_path ):
        source = tmp_path / "movie.srt";
        source.write_text( "small file" );
        backup_dir = tmp_path / "backup";
        make_backups( backup_dir, "movie.srt", [ f"2024-01-0{day}T00-00-00-000000" for day in range( 1, 5 ) ] );

        manager = BackupManager( backup_dir );
        manager.max_small_files = 2;

        assert manager.apply_retention_policy( source ) == 2;
        assert sorted( path.name for path in backup_dir.iterdir() ) == [
            "movie.2024-01-03T00-00-00-000000.srt",
            "movie.2024-01-04T00-00-00-000000.srt"
        ];

    def test_large_files_use_lower_limit( self, tmp_path ):
        source = tmp_path / "movie.srt";
        source.write_bytes( b"x" * ( 150 * 1024 ) );
        backup_dir = tmp_path / "backup";
        make_backups( backup_dir, "movie.srt", [ f"2024-01-0{day}T00-00-00-000000" for day in range( 1, 4 ) ] );

        manager = BackupManager( backup_dir );
        manager.max_small_files = 3;
        manager.max_large_files = 1;

        assert manager.apply_retention_policy( source ) == 2;
