"""
Terminal driver for interactive alignment and side-by-side comparison, rendered with Rich.
"""
from itertools import zip_longest
from typing import Callable, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from .errors import SubAlignError
from .session import InteractiveSession
from .subtitles import Cue, Timeline


SESSION_HELP = "[y] confirm  [n] reject  [p R T] pair cue R with cue T  [u] undo  [d] done  [q] quit";
COMPARE_HELP = "> n(next) q(quit) 1~9(show next 1~9)";


class ConsoleUI:
    """
    Rich-based terminal front end.

    Reads operator commands through an injectable input function so the
    whole loop can be scripted in tests.
    """

    def __init__( self, console: Optional[Console] = None, input_func: Callable[[str], str] = input ):
        self.console = console or Console();
        self.input_func = input_func;

    def read_command( self, prompt: str ) -> Optional[str]:
        """Next operator command, or None when input is exhausted."""
        try:
            return self.input_func( prompt ).strip().lower();
        except EOFError:
            return None;

    @staticmethod
    def _cue_cells( cue: Optional[Cue] ):
        if cue is None:
            return "", "", "", "";
        return str( cue.sequence_index ), str( cue.start ), str( cue.end ), Text( cue.text );

    def render_pair( self, left: Optional[Cue], right: Optional[Cue], left_title: str, right_title: str ) -> Table:
        """Two cues side by side: index, start, end and text rows."""
        table = Table( show_header=True, header_style="bold" );
        table.add_column( "" );
        table.add_column( left_title );
        table.add_column( right_title );

        for label, left_cell, right_cell in zip( ( "#", "Start", "End", "Text" ), self._cue_cells( left ), self._cue_cells( right ) ):
            table.add_row( label, left_cell, right_cell );
        return table;

    def show_suggestion( self, session: InteractiveSession, reference_cue: Cue, target_cue: Cue ):
        reference_index, target_index = session.pending;
        table = self.render_pair(
            reference_cue,
            target_cue,
            f"Reference cue {reference_index + 1}/{len( session.reference )}",
            f"Target cue {target_index + 1}/{len( session.target )}"
        );
        self.console.print( table );
        self.console.print( f"Offset for this pair: {reference_cue.start - target_cue.start:+d}ms  "
                            f"(anchors confirmed: {len( session.anchors )})" );

    def run_session( self, session: InteractiveSession ) -> Optional[Timeline]:
        """
        Drive a session until the operator finishes or quits.

        Returns:
            The re-timed target timeline, or None if the operator quit
        """
        while True:
            pair = session.next_suggestion();
            if pair is None:
                self.console.print( "[yellow]No more suggestions.[/yellow] Pair cues manually, or finish with [bold]d[/bold]." );
            else:
                self.show_suggestion( session, *pair );

            command = self.read_command( f"{SESSION_HELP}\n> " );
            if command is None or command == "q":
                session.abort();
                self.console.print( "[yellow]Alignment aborted, nothing written.[/yellow]" );
                return None;

            try:
                if command == "y":
                    if pair is None:
                        self.console.print( "[red]Nothing to confirm.[/red]" );
                        continue;
                    anchor = session.confirm();
                    self.console.print( f"[green]Confirmed {escape( repr( anchor ) )}[/green]" );
                elif command == "n":
                    session.reject();
                elif command.startswith( "p" ):
                    parts = command.split();
                    if len( parts ) != 3:
                        self.console.print( "[red]Usage: p REFERENCE_CUE TARGET_CUE (1-based numbers)[/red]" );
                        continue;
                    anchor = session.override_pairing( int( parts[1] ) - 1, int( parts[2] ) - 1 );
                    self.console.print( f"[green]Confirmed {escape( repr( anchor ) )}[/green]" );
                elif command == "u":
                    anchor = session.undo_last();
                    self.console.print( f"Removed {escape( repr( anchor ) )}" );
                elif command == "d":
                    return session.finish();
                else:
                    self.console.print( SESSION_HELP, markup=False );
            except ValueError:
                self.console.print( "[red]Cue numbers must be integers.[/red]" );
            except ( SubAlignError, IndexError ) as e:
                self.console.print( f"[red]{type( e ).__name__}: {escape( str( e ) )}[/red]" );

    def compare( self, left: Timeline, right: Timeline, page_size: int = 1, interactive: bool = True ):
        """
        Page through two timelines side by side.

        Keys: n / Enter / 1 next cue, 2-9 next that many cues, q quit.
        Non-interactive mode prints every pair at once.
        """
        pairs = list( zip_longest( left, right ) );
        position = 0;
        count = max( 1, page_size );

        while position < len( pairs ):
            shown = pairs[position:] if not interactive else pairs[position:position + count];
            for left_cue, right_cue in shown:
                self.console.print( self.render_pair( left_cue, right_cue, "Left", "Right" ) );
            position += len( shown );

            if position >= len( pairs ):
                break;

            while True:
                command = self.read_command( f"{COMPARE_HELP}\n" );
                if command is None or command == "q":
                    return;
                if command in ( "n", "" ):
                    count = 1;
                    break;
                if len( command ) == 1 and command in "123456789":
                    count = int( command );
                    break;
                self.console.print( "invalid key input, retry" );
