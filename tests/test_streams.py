"""
Test cases for subtitle stream listing and extraction (ffmpeg mocked).
"""
import json
import pytest
from pathlib import Path
from unittest.mock import patch
import sys

import ffmpeg
from rich.table import Table

# Add src directory to path for testing
sys.path.insert( 0, str( Path( __file__ ).parent.parent / "src" ) );

from subalign.errors import StreamToolError
from subalign.streams import FfmpegStreamProbe, SubtitleStream, format_streams, parse_probe_streams


PROBE_OUTPUT = {
    "streams": [
        {
            "index": 2,
            "codec_type": "subtitle",
            "codec_name": "subrip",
            "duration": "1441.234000",
            "tags": { "language": "eng", "title": "English" }
        },
        {
            "index": 3,
            "codec_type": "subtitle",
            "codec_name": "ass",
            "tags": { "language": "chi", "DURATION": "00:24:01.500000000" }
        },
        {
            "index": 4,
            "codec_type": "subtitle",
            "codec_name": "hdmv_pgs_subtitle"
        }
    ]
};


@pytest.fixture
def container( tmp_path ):
    path = tmp_path / "movie.mkv";
    path.write_bytes( b"\x1a\x45\xdf\xa3" );
    return path;


class TestProbeParsing:
    """Turning ffprobe JSON into stream records."""

    def test_parse_probe_streams( self ):
        streams = parse_probe_streams( PROBE_OUTPUT );

        assert [ stream.index for stream in streams ] == [ 2, 3, 4 ];
        assert streams[0] == SubtitleStream( 2, "subrip", "eng", "English", 1441234 );
        assert streams[1].duration_ms == 1441500;
        assert streams[1].title is None;
        assert streams[2].language is None;
        assert streams[2].duration_ms is None;

    def test_non_subtitle_streams_ignored( self ):
        probe = { "streams": [ { "index": 0, "codec_type": "video", "codec_name": "h264" } ] };
        assert parse_probe_streams( probe ) == [];


class TestFfmpegStreamProbe:
    """ffprobe / ffmpeg invocations."""

    @patch( "subalign.streams.ffmpeg.probe" )
    def test_list_streams( self, mock_probe, container ):
        mock_probe.return_value = PROBE_OUTPUT;

        streams = FfmpegStreamProbe( ffprobe_cmd="my-ffprobe" ).list_streams( container );

        assert len( streams ) == 3;
        mock_probe.assert_called_once_with( str( container ), cmd="my-ffprobe", select_streams="s" );

    @patch( "subalign.streams.ffmpeg.probe" )
    def test_probe_failure( self, mock_probe, container ):
        mock_probe.side_effect = ffmpeg.Error( "ffprobe", b"", b"movie.mkv: Invalid data found when processing input" );

        with pytest.raises( StreamToolError ) as excinfo:
            FfmpegStreamProbe().list_streams( container );
        assert "Invalid data" in str( excinfo.value );

    def test_missing_container( self, tmp_path ):
        with pytest.raises( StreamToolError ):
            FfmpegStreamProbe().list_streams( tmp_path / "missing.mkv" );

    @patch( "subalign.streams.ffmpeg.input" )
    def test_extract_stream( self, mock_input, container, tmp_path ):
        output = tmp_path / "out.srt";
        run = mock_input.return_value.output.return_value.overwrite_output.return_value.run;
        run.side_effect = lambda **kwargs: output.write_text( "1\n00:00:01,000 --> 00:00:02,000\nhi\n" );

        result = FfmpegStreamProbe( ffmpeg_cmd="my-ffmpeg" ).extract( container, 3, output );

        assert result == output;
        mock_input.assert_called_once_with( str( container ) );
        mock_input.return_value.output.assert_called_once_with( str( output ), map="0:3", **{ "c:s": "srt" } );
        run.assert_called_once_with( cmd="my-ffmpeg", capture_stdout=True, capture_stderr=True );

    @patch( "subalign.streams.ffmpeg.input" )
    def test_extract_first_stream_by_default( self, mock_input, container, tmp_path ):
        output = tmp_path / "out.srt";
        run = mock_input.return_value.output.return_value.overwrite_output.return_value.run;
        run.side_effect = lambda **kwargs: output.write_text( "" );

        FfmpegStreamProbe().extract( container, None, output );

        mock_input.return_value.output.assert_called_once_with( str( output ), map="0:s:0", **{ "c:s": "srt" } );

    @patch( "subalign.streams.ffmpeg.input" )
    def test_extract_failure( self, mock_input, container, tmp_path ):
        run = mock_input.return_value.output.return_value.overwrite_output.return_value.run;
        run.side_effect = ffmpeg.Error( "ffmpeg", b"", b"Stream map '0:9' matches no streams." );

        with pytest.raises( StreamToolError ) as excinfo:
            FfmpegStreamProbe().extract( container, 9, tmp_path / "out.srt" );
        assert "matches no streams" in str( excinfo.value );

    @patch( "subalign.streams.ffmpeg.input" )
    def test_extract_without_output_file( self, mock_input, container, tmp_path ):
        with pytest.raises( StreamToolError ):
            FfmpegStreamProbe().extract( container, 2, tmp_path / "out.srt" );


class TestFormatStreams:
    """json / table / list renderings."""

    def test_json( self ):
        rendered = format_streams( parse_probe_streams( PROBE_OUTPUT ), "json" );
        data = json.loads( rendered );
        assert data[0] == {
            "index": 2,
            "codec_name": "subrip",
            "language": "eng",
            "title": "English",
            "duration_ms": 1441234
        };

    def test_table( self ):
        table = format_streams( parse_probe_streams( PROBE_OUTPUT ), "table" );
        assert isinstance( table, Table );
        assert table.row_count == 3;

    def test_list( self ):
        rendered = format_streams( parse_probe_streams( PROBE_OUTPUT ), "list" );
        lines = rendered.splitlines();
        assert lines[0] == "Index(2) Codec Name(subrip) Duration(1441234ms) Language(eng) Title(English)";
        assert lines[2] == "Index(4) Codec Name(hdmv_pgs_subtitle) Duration(N/A) Language(N/A) Title(N/A)";

    def test_unknown_format( self ):
        with pytest.raises( ValueError ):
            format_streams( [], "xml" );
