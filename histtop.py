#!/usr/bin/env python3
"""
histtop.py - Most used shell commands, from your history file

Reads a Zsh or Bash history file and prints a ranked table of the commands you
run most, in one of three views:

- fuzzy (default): commands grouped by program name, leading flags and known
  subcommands, so `git add a.txt` and `git add b.txt` count as `git add`.
- exact: identical command lines only.
- heat: every word of every command counted on its own.

Usage
-----
    histtop                    # top 10 fuzzy commands from ~/.zsh_history
    histtop -e -n 20           # top 20 exact commands
    histtop --flavor-bash -t   # word heatmap of ~/.bash_history
    histtop --browse           # interactive view, switch modes with z/e/t

Output
------
    |  HEAT    |    COUNT | COMMAND
    | -------- | -------- | -------
    | ████████ |      540 | git status
    | ████     |      270 | cargo run --release
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable

from rich.console import Console, Group
from rich.markup import escape
from rich.text import Text as RichText
from rich.theme import Theme
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Static

from command_lexer import NonScrollableVerticalScroll, highlight_command
from histparse import (
    FLAVORS,
    MODES,
    SUBCOMMAND_KEYWORDS,
    HistoryEntry,
    decode_history,
    iter_signatures,
)

# ============================================================================
# CONFIGURATION & CONSTANTS
# ============================================================================

TITLE_STYLE = "bold #C678DD"

CUSTOM_THEME = Theme({
    "context": "#5C6370",
    "warning": "#E5C07B",
    "error": "#E06C75",
})

console = Console(stderr=True, theme=CUSTOM_THEME)
out_console = Console(theme=CUSTOM_THEME)

DEFAULT_COUNT = 10
BAR_WIDTH = 8
BAR_CHAR = "█"
COUNT_WIDTH = 8

HISTORY_FILES = {
    "zsh": ".zsh_history",
    "bash": ".bash_history",
}

MODE_TITLES = {
    "fuzzy": "Fuzzy",
    "exact": "Exact",
    "heat": "Heatmap",
}


class Config:
    """Tunables shared by the printer and the browser"""

    @property
    def subcommand_keywords(self) -> frozenset[str]:
        """→ Words that extend a fuzzy signature past the program name"""
        return SUBCOMMAND_KEYWORDS

    @property
    def history_files(self) -> dict[str, str]:
        """→ Default history file name per flavor, relative to $HOME"""
        return HISTORY_FILES

    @property
    def bar_width(self) -> int:
        return BAR_WIDTH


CONFIG = Config()


@dataclass
class Options:
    """Settings for one run."""

    flavor: str = "zsh"
    mode: str = "fuzzy"
    count: int = DEFAULT_COUNT
    file: Path | None = None
    strip_sudo: bool = False
    browse: bool = False
    verbose: bool = False


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass
class CountRecord:
    """Occurrences of one key, with the label it was first seen under."""

    label: str
    count: int = 0


@dataclass
class RankedEntry:
    """A row of the output table."""

    label: str
    count: int
    bar_length: int


# ============================================================================
# FREQUENCY AGGREGATION
# ============================================================================


class FrequencyCounter:
    """Counts keys, remembering the first label seen for each.

    Records are kept in first-seen order, which the ranking relies on to break
    ties deterministically.
    """

    def __init__(self) -> None:
        self.records: dict[str, CountRecord] = {}

    def add(self, key: str, label: str) -> None:
        record = self.records.get(key)
        if record is None:
            record = self.records[key] = CountRecord(label=label)
        record.count += 1

    def update(self, pairs: Iterable[tuple[str, str]]) -> None:
        for key, label in pairs:
            self.add(key, label)

    def __len__(self) -> int:
        return len(self.records)


def count_entries(
    entries: Iterable[HistoryEntry], mode: str, strip_sudo: bool = False
) -> FrequencyCounter:
    """→ Aggregation: runs tokenizing and signature building over all entries"""
    counter = FrequencyCounter()
    counter.update(
        iter_signatures(entries, mode, CONFIG.subcommand_keywords, strip_sudo=strip_sudo)
    )
    return counter


# ============================================================================
# RANKING & RENDERING
# ============================================================================


def bar_length(count: int, max_count: int, width: int = BAR_WIDTH) -> int:
    """→ Bar size relative to the largest count; any nonzero count gets at least 1"""
    if count <= 0 or max_count <= 0:
        return 0
    return max(1, round(count / max_count * width))


def rank_records(
    records: dict[str, CountRecord], limit: int = DEFAULT_COUNT, width: int = BAR_WIDTH
) -> list[RankedEntry]:
    """Select the `limit` most frequent records and size their bars.

    `sorted` is stable, so records with equal counts stay in first-seen order.
    """
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")

    top = sorted(records.values(), key=lambda r: -r.count)[:limit]
    if not top:
        return []
    max_count = top[0].count
    return [
        RankedEntry(label=r.label, count=r.count, bar_length=bar_length(r.count, max_count, width))
        for r in top
    ]


def render_bar(length: int, width: int = BAR_WIDTH) -> str:
    return (BAR_CHAR * length).ljust(width)


def _row_prefix(heat: str, count: str, width: int) -> str:
    return f"| {heat:<{width}} | {count:>{COUNT_WIDTH}} | "


def render_header(width: int = BAR_WIDTH) -> list[str]:
    """→ Static column titles plus the dash separator row"""
    return [
        _row_prefix(" HEAT", "COUNT", width) + "COMMAND",
        f"| {'-' * width} | {'-' * COUNT_WIDTH} | {'-' * len('COMMAND')}",
    ]


def render_table(entries: list[RankedEntry], width: int = BAR_WIDTH) -> list[str]:
    """Render ranked entries as plain fixed-width lines.

    Labels are passed through verbatim, except that newlines from multi-line
    commands are shown as spaces so every entry stays on one row.
    """
    lines = render_header(width)
    for entry in entries:
        prefix = _row_prefix(render_bar(entry.bar_length, width), str(entry.count), width)
        lines.append(prefix + entry.label.replace("\n", " "))
    return lines


def report_lines(entries: list[RankedEntry], mode: str, width: int = BAR_WIDTH) -> list[str]:
    """→ Title, blank lines and the table, as printed"""
    return ["", f"  {MODE_TITLES[mode]} Commands", "", *render_table(entries, width), ""]


def render_report(entries: list[RankedEntry], mode: str, width: int = BAR_WIDTH) -> Group:
    """Rich renderable of `report_lines`, with the title styled and commands highlighted.

    Rows are cut with an ellipsis at the terminal edge instead of wrapping.
    """
    lines = report_lines(entries, mode, width)
    rows = [RichText(line, no_wrap=True) for line in lines]
    rows[1].stylize(TITLE_STYLE)

    first_row = len(lines) - 1 - len(entries)
    for i, entry in enumerate(entries, first_row):
        label = highlight_command(entry.label)
        row = RichText(lines[i][: len(lines[i]) - len(label)], no_wrap=True, overflow="ellipsis")
        row.append_text(label)
        rows[i] = row
    return Group(*rows)


def print_report(entries: list[RankedEntry], mode: str, width: int = BAR_WIDTH) -> None:
    """→ Output: highlighted on a terminal, plain uncropped lines when redirected"""
    if out_console.is_terminal:
        out_console.print(render_report(entries, mode, width), soft_wrap=False)
    else:
        out_console.out("\n".join(report_lines(entries, mode, width)), highlight=False)


# ============================================================================
# FILE I/O & SHELL DETECTION
# ============================================================================


def _console_print(string="", *args, **kwargs) -> None:
    """→ Safe console printing with fallback"""
    try:
        console.print(string, *args, **kwargs)
    except Exception:
        kwargs_clean = {k: v for k, v in kwargs.items() if k in ["sep", "end", "flush"]}
        print(string, *args, file=sys.stderr, **kwargs_clean)


def recorded_span(entries: Iterable[HistoryEntry]) -> tuple[int | None, int | None]:
    """→ Earliest and latest timestamp among entries that carry one"""
    stamps = [e.timestamp for e in entries if e.timestamp is not None]
    if not stamps:
        return None, None
    return min(stamps), max(stamps)


def format_ts(ts: int | None) -> str:
    """Format timestamp as readable date."""
    if ts is None:
        return "—"
    try:
        return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")
    except (OverflowError, OSError, ValueError):
        return str(ts)


def detect_flavor(shell_path: str | None) -> str | None:
    """→ Picks the flavor whose name appears in a $SHELL value"""
    if not shell_path:
        return None
    name = Path(shell_path).name
    for flavor in FLAVORS:
        if flavor in name:
            return flavor
    return None


def resolve_history_path(options: Options) -> Path:
    """→ Explicit -f path, or the flavor's history file in $HOME"""
    if options.file is not None:
        return options.file.expanduser()
    return Path.home() / CONFIG.history_files[options.flavor]


def read_history_bytes(file_path: Path) -> bytes | None:
    """→ File I/O: Reads the raw history file, reporting errors"""
    try:
        return file_path.read_bytes()
    except FileNotFoundError:
        _console_print(f"[error]Error: History file not found at '{escape(str(file_path))}'[/error]")
        return None
    except IsADirectoryError:
        _console_print(f"[error]Error: '{escape(str(file_path))}' is a directory[/error]")
        return None
    except PermissionError:
        _console_print(f"[error]Error: Permission denied reading '{escape(str(file_path))}'[/error]")
        return None
    except OSError as e:
        _console_print(f"[error]Error reading file '{escape(str(file_path))}': {escape(str(e))}[/error]")
        return None


# ============================================================================
# INTERACTIVE BROWSER
# ============================================================================


class TopCommandsApp(App):
    """Browse the ranking, switching views without re-reading the file."""

    TITLE = "histtop"

    CSS = """
    #report {
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("z", "set_mode('fuzzy')", "Fuzzy"),
        ("e", "set_mode('exact')", "Exact"),
        ("t", "set_mode('heat')", "Heat"),
        Binding("plus,equals_sign", "change_count(1)", "More", key_display="+"),
        Binding("minus", "change_count(-1)", "Fewer", key_display="-"),
        ("q", "quit", "Quit"),
    ]

    def __init__(self, entries: list[HistoryEntry], options: Options, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entries = entries
        self.display_mode = options.mode
        self.limit = options.count
        self.strip_sudo = options.strip_sudo
        self._counts_by_mode: dict[str, FrequencyCounter] = {}

    def compose(self) -> ComposeResult:
        yield Header()
        with NonScrollableVerticalScroll():
            yield Static(id="report")
        yield Footer()

    def on_mount(self):
        self.refresh_report()

    def ranked(self) -> list[RankedEntry]:
        if self.display_mode not in self._counts_by_mode:
            self._counts_by_mode[self.display_mode] = count_entries(
                self.entries, self.display_mode, self.strip_sudo
            )
        return rank_records(self._counts_by_mode[self.display_mode].records, self.limit, CONFIG.bar_width)

    def refresh_report(self) -> None:
        self.sub_title = f"{MODE_TITLES[self.display_mode]} · top {self.limit}"
        report = render_report(self.ranked(), self.display_mode, CONFIG.bar_width)
        self.query_one("#report", Static).update(report)

    def action_set_mode(self, mode: str):
        if mode in MODES and mode != self.display_mode:
            self.display_mode = mode
            self.refresh_report()

    def action_change_count(self, delta: int):
        self.limit = max(1, self.limit + delta)
        self.refresh_report()


# ============================================================================
# MAIN
# ============================================================================


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid count: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"count must be at least 1, got {number}")
    return number


def _parse_arguments(argv: list[str] | None = None) -> Options:
    """Parse command-line arguments into run options."""
    ap = argparse.ArgumentParser(
        prog="histtop",
        description="Show the most used commands from your shell history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    display = ap.add_mutually_exclusive_group()
    display.add_argument(
        "-z",
        "--display-fuzzy",
        dest="mode",
        action="store_const",
        const="fuzzy",
        help="Show fuzzy matched output. This is the default option.",
    )
    display.add_argument(
        "-e",
        "--display-exact",
        dest="mode",
        action="store_const",
        const="exact",
        help="Show the most common exact commands",
    )
    display.add_argument(
        "-t",
        "--display-heat",
        dest="mode",
        action="store_const",
        const="heat",
        help="Show the most common command components",
    )

    shell = ap.add_mutually_exclusive_group()
    shell.add_argument(
        "--flavor-zsh",
        dest="flavor",
        action="store_const",
        const="zsh",
        help="Parse Zsh history. This is the default option.",
    )
    shell.add_argument(
        "--flavor-bash",
        dest="flavor",
        action="store_const",
        const="bash",
        help="Parse Bash history",
    )
    shell.add_argument(
        "--flavor-auto",
        dest="flavor",
        action="store_const",
        const="auto",
        help="Pick the flavor from $SHELL",
    )

    ap.add_argument(
        "-f",
        dest="file",
        metavar="FILE",
        type=Path,
        help="File to parse. Defaults to history file of selected shell flavor",
    )
    ap.add_argument(
        "-n",
        dest="count",
        type=_positive_int,
        default=DEFAULT_COUNT,
        help=f"How many items to show (default: {DEFAULT_COUNT})",
    )
    ap.add_argument(
        "--strip-sudo",
        action="store_true",
        help="Count `sudo cmd` as `cmd`",
    )
    ap.add_argument(
        "--browse",
        action="store_true",
        help="Open an interactive view instead of printing",
    )
    ap.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print parsing details to stderr",
    )

    args = ap.parse_args(argv)

    return Options(
        flavor=args.flavor or "zsh",
        mode=args.mode or "fuzzy",
        count=args.count,
        file=args.file,
        strip_sudo=args.strip_sudo,
        browse=args.browse,
        verbose=args.verbose,
    )


def main(argv: list[str] | None = None) -> int:
    """→ Main: read, decode, count, rank, print"""
    options = _parse_arguments(argv)

    if options.flavor == "auto":
        detected = detect_flavor(os.environ.get("SHELL"))
        if detected is None:
            _console_print(
                "[error]Unable to detect shell, please select --flavor-zsh or --flavor-bash[/error]"
            )
            return 1
        options.flavor = detected

    history_path = resolve_history_path(options)
    data = read_history_bytes(history_path)
    if data is None:
        return 1

    entries = list(decode_history(data, options.flavor))

    if options.browse:
        TopCommandsApp(entries, options).run()
        return 0

    counter = count_entries(entries, options.mode, options.strip_sudo)
    ranked = rank_records(counter.records, options.count, CONFIG.bar_width)

    if options.verbose:
        _console_print(f"[context]History file: {escape(str(history_path))} ({options.flavor})[/context]")
        if not entries:
            _console_print("[warning]No commands found in the history file[/warning]")
        _console_print(
            f"[context]Decoded {len(entries)} entries, "
            f"{len(counter)} distinct {options.mode} keys[/context]"
        )
        first_ts, last_ts = recorded_span(entries)
        if first_ts is not None:
            _console_print(f"[context]Recorded {format_ts(first_ts)} → {format_ts(last_ts)}[/context]")

    print_report(ranked, options.mode, CONFIG.bar_width)
    return 0


if __name__ == "__main__":
    sys.exit(main())
