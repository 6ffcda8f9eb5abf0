#!/usr/bin/env python3
"""Tests for histtop.py."""

import asyncio
from datetime import datetime
from pathlib import Path

import pytest

from command_lexer import highlight_command
from histparse import HistoryEntry
from histtop import (
    CountRecord,
    FrequencyCounter,
    Options,
    RankedEntry,
    TopCommandsApp,
    _parse_arguments,
    bar_length,
    count_entries,
    detect_flavor,
    format_ts,
    main,
    rank_records,
    read_history_bytes,
    recorded_span,
    render_report,
    render_table,
    report_lines,
    resolve_history_path,
)

HEADER = "|  HEAT    |    COUNT | COMMAND"
SEPARATOR = "| -------- | -------- | -------"


def _records(**counts: int) -> dict[str, CountRecord]:
    return {key: CountRecord(label=key, count=count) for key, count in counts.items()}


def test_counter_first_label_wins() -> None:
    """Test a key seen twice counts 2 and keeps its first label."""
    counter = FrequencyCounter()
    counter.add("git add", "git add")
    counter.add("git add", "git add something else")
    assert counter.records["git add"] == CountRecord(label="git add", count=2)
    assert len(counter) == 1


def test_counter_empty() -> None:
    """Test an empty input gives an empty map."""
    counter = FrequencyCounter()
    counter.update([])
    assert counter.records == {}


def test_count_entries_fuzzy_collapses_repeats() -> None:
    """Test two identical fuzzy commands collapse into one record."""
    entries = [HistoryEntry("git add -i"), HistoryEntry("git add -i")]
    counter = count_entries(entries, "fuzzy")
    assert counter.records == {"git add -i": CountRecord(label="git add -i", count=2)}


def test_count_entries_fuzzy_keeps_cargo_variants_apart() -> None:
    """Test `cargo run` and `cargo run --release` are separate groups."""
    entries = [HistoryEntry("cargo run"), HistoryEntry("cargo run --release")]
    counter = count_entries(entries, "fuzzy")
    assert list(counter.records) == ["cargo run", "cargo run --release"]


def test_count_entries_heat() -> None:
    """Test heat mode counts tokens across commands."""
    entries = [HistoryEntry("git status"), HistoryEntry("git push origin main")]
    counter = count_entries(entries, "heat")
    assert counter.records["git"].count == 2
    assert counter.records["origin"].count == 1


def test_count_entries_strip_sudo() -> None:
    """Test sudo-prefixed commands group with plain ones when stripping."""
    entries = [HistoryEntry("sudo apt install vim"), HistoryEntry("apt install git")]
    counter = count_entries(entries, "fuzzy", strip_sudo=True)
    assert counter.records["apt install"].count == 2


def test_rank_ties_keep_first_seen_order() -> None:
    """Test equal counts keep the order the keys were first seen."""
    ranked = rank_records(_records(a=5, b=5, c=3), limit=2)
    assert [r.label for r in ranked] == ["a", "b"]


def test_rank_orders_by_count() -> None:
    """Test higher counts come first regardless of insertion order."""
    ranked = rank_records(_records(low=1, high=9, mid=4))
    assert [r.label for r in ranked] == ["high", "mid", "low"]


def test_rank_limit_is_a_ceiling() -> None:
    """Test fewer keys than the limit returns all of them."""
    assert len(rank_records(_records(a=1, b=2), limit=10)) == 2


def test_rank_empty() -> None:
    """Test no records ranks to nothing."""
    assert rank_records({}) == []


def test_rank_rejects_non_positive_limit() -> None:
    """Test a zero limit is an error."""
    with pytest.raises(ValueError):
        rank_records(_records(a=1), limit=0)


def test_bar_scaling() -> None:
    """Test bars scale linearly to the largest selected count."""
    ranked = rank_records(_records(top=540, half=270), width=8)
    assert [r.bar_length for r in ranked] == [8, 4]


def test_bar_scaled_to_selected_entries() -> None:
    """Test the maximum comes from the selected rows only."""
    ranked = rank_records(_records(a=100, b=50, c=10), limit=1, width=8)
    assert ranked == [RankedEntry(label="a", count=100, bar_length=8)]


def test_bar_minimum_length() -> None:
    """Test a tiny nonzero count still gets a bar."""
    assert bar_length(1, 1000, 8) == 1
    assert bar_length(0, 1000, 8) == 0


def test_render_table_rows() -> None:
    """Test the fixed-width layout."""
    lines = render_table(
        [RankedEntry("git status", 540, 8), RankedEntry("cargo run --release", 270, 4)]
    )
    assert lines == [
        HEADER,
        SEPARATOR,
        "| ████████ |      540 | git status",
        "| ████     |      270 | cargo run --release",
    ]


def test_render_table_empty() -> None:
    """Test an empty ranking renders only the header."""
    assert render_table([]) == [HEADER, SEPARATOR]


def test_render_table_multiline_label() -> None:
    """Test a multi-line command stays on one row."""
    lines = render_table([RankedEntry("for f in *\ndo ls\ndone", 1, 8)])
    assert lines[-1].endswith("| for f in * do ls done")


def test_highlight_keeps_text() -> None:
    """Test highlighting does not change the command text."""
    command = "git commit -m \"fix bug\" && echo $HOME | grep 'x'"
    assert highlight_command(command).plain == command


def test_render_report_matches_printed_lines() -> None:
    """Test the highlighted report holds the same text as the plain one, row for row."""
    entries = [RankedEntry("git status", 540, 8), RankedEntry("for f in *\ndone", 270, 4)]
    rows = render_report(entries, "exact").renderables
    assert [row.plain for row in rows] == report_lines(entries, "exact")
    assert report_lines(entries, "exact")[5:7] == [
        "| ████████ |      540 | git status",
        "| ████     |      270 | for f in * done",
    ]


def test_recorded_span() -> None:
    """Test the span covers only entries that have a timestamp."""
    entries = [HistoryEntry("ls", 1700000500), HistoryEntry("pwd"), HistoryEntry("make", 1700000000)]
    assert recorded_span(entries) == (1700000000, 1700000500)
    assert recorded_span([HistoryEntry("ls")]) == (None, None)


def test_format_ts_out_of_range() -> None:
    """Test a timestamp too large for a date is shown as a number."""
    assert format_ts(9999999999999999999) == "9999999999999999999"
    assert format_ts(None) == "—"


def test_detect_flavor() -> None:
    """Test the flavor is read from the shell path."""
    assert detect_flavor("/bin/zsh") == "zsh"
    assert detect_flavor("/usr/local/bin/bash") == "bash"
    assert detect_flavor("/usr/bin/fish") is None
    assert detect_flavor(None) is None


def test_resolve_history_path(monkeypatch) -> None:
    """Test the default path follows the flavor and -f overrides it."""
    monkeypatch.setattr(Path, "home", lambda: Path("/home/user"))
    assert resolve_history_path(Options(flavor="bash")) == Path("/home/user/.bash_history")
    assert resolve_history_path(Options()) == Path("/home/user/.zsh_history")
    assert resolve_history_path(Options(file=Path("/tmp/h"))) == Path("/tmp/h")


def test_parse_arguments_defaults() -> None:
    """Test defaults: zsh, fuzzy, top 10."""
    options = _parse_arguments([])
    assert options == Options(flavor="zsh", mode="fuzzy", count=10)


def test_parse_arguments_flags() -> None:
    """Test the display, flavor and count flags."""
    options = _parse_arguments(["-e", "--flavor-bash", "-n", "3", "-f", "hist", "--strip-sudo"])
    assert options.mode == "exact"
    assert options.flavor == "bash"
    assert options.count == 3
    assert options.file == Path("hist")
    assert options.strip_sudo


def test_parse_arguments_exclusive_modes() -> None:
    """Test two display modes at once are rejected."""
    with pytest.raises(SystemExit) as exc_info:
        _parse_arguments(["-e", "-t"])
    assert exc_info.value.code == 2


def test_parse_arguments_bad_count() -> None:
    """Test a non-positive count is rejected."""
    with pytest.raises(SystemExit):
        _parse_arguments(["-n", "0"])


def test_read_missing_file(tmp_path, capsys) -> None:
    """Test a missing file is reported and returns None."""
    assert read_history_bytes(tmp_path / "nope") is None
    assert "not found" in capsys.readouterr().err


def test_main_exact(tmp_path, capsys) -> None:
    """Test a full run over a zsh history file prints exactly the table."""
    history = tmp_path / ".zsh_history"
    history.write_text(
        ": 1700000000:0;git status\n"
        ": 1700000001:0;ls\n"
        ": 1700000002:0;git status\n"
        "git status\n"
    )
    assert main(["-e", "-f", str(history)]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "",
        "  Exact Commands",
        "",
        HEADER,
        SEPARATOR,
        "| ████████ |        3 | git status",
        "| ███      |        1 | ls",
        "",
    ]


def test_main_bash_exact_rows_are_consecutive(tmp_path, capsys) -> None:
    """Test data rows are printed back to back with no blank lines between."""
    history = tmp_path / ".bash_history"
    history.write_text("ls\nls\npwd\n")
    assert main(["-e", "--flavor-bash", "-f", str(history)]) == 0
    out = capsys.readouterr().out
    assert out.endswith(
        f"{HEADER}\n{SEPARATOR}\n"
        "| ████████ |        2 | ls\n"
        "| ████     |        1 | pwd\n"
        "\n"
    )


def test_main_bash_heat(tmp_path, capsys) -> None:
    """Test heat mode over a bash history file."""
    history = tmp_path / ".bash_history"
    history.write_text("#1700000000\ngit push\ngit pull\n")
    assert main(["-t", "--flavor-bash", "-n", "1", "-f", str(history)]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "",
        "  Heatmap Commands",
        "",
        HEADER,
        SEPARATOR,
        "| ████████ |        2 | git",
        "",
    ]


def test_main_long_command_not_cropped(tmp_path, capsys) -> None:
    """Test redirected output keeps commands longer than the terminal width."""
    command = "echo " + "x" * 150
    history = tmp_path / "hist"
    history.write_text(command + "\n")
    assert main(["-e", "-f", str(history)]) == 0
    out = capsys.readouterr().out
    assert f"| ████████ |        1 | {command}\n" in out
    assert "…" not in out


def test_main_empty_file(tmp_path, capsys) -> None:
    """Test an empty history prints only the header and succeeds."""
    history = tmp_path / "empty"
    history.write_bytes(b"")
    assert main(["-f", str(history)]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "",
        "  Fuzzy Commands",
        "",
        HEADER,
        SEPARATOR,
        "",
    ]


def test_main_missing_file(tmp_path, capsys) -> None:
    """Test a missing history file exits nonzero."""
    assert main(["-f", str(tmp_path / "missing")]) == 1
    captured = capsys.readouterr()
    assert "not found" in captured.err
    assert captured.out == ""


def test_main_auto_flavor(tmp_path, monkeypatch, capsys) -> None:
    """Test --flavor-auto reads $SHELL."""
    history = tmp_path / "hist"
    history.write_text(": 1700000000:0;make\n")
    monkeypatch.setenv("SHELL", "/bin/bash")
    assert main(["--flavor-auto", "-e", "-f", str(history)]) == 0
    # parsed as bash, so the zsh prefix stays in the command
    assert ": 1700000000:0;make" in capsys.readouterr().out


def test_main_auto_flavor_unknown(monkeypatch, capsys) -> None:
    """Test --flavor-auto fails when the shell is not recognised."""
    monkeypatch.setenv("SHELL", "/usr/bin/fish")
    assert main(["--flavor-auto"]) == 1
    assert "Unable to detect shell" in capsys.readouterr().err


def test_main_verbose(tmp_path, capsys) -> None:
    """Test --verbose reports counts on stderr."""
    history = tmp_path / "hist"
    history.write_text("ls\nls\npwd\n")
    assert main(["-v", "-e", "-f", str(history)]) == 0
    assert "Decoded 3 entries, 2 distinct exact keys" in capsys.readouterr().err


def test_main_verbose_recorded_span(tmp_path, capsys) -> None:
    """Test --verbose shows when the first and last timed commands were run."""
    history = tmp_path / "hist"
    history.write_text(": 1700000000:0;ls\npwd\n: 1700000600:2;make\n")
    assert main(["-v", "-f", str(history)]) == 0
    first = datetime.fromtimestamp(1700000000).strftime("%Y-%m-%d %H:%M")
    last = datetime.fromtimestamp(1700000600).strftime("%Y-%m-%d %H:%M")
    assert f"Recorded {first} → {last}" in capsys.readouterr().err


def test_main_verbose_without_timestamps(tmp_path, capsys) -> None:
    """Test no recorded span is shown when nothing carries a timestamp."""
    history = tmp_path / "hist"
    history.write_text("ls\n")
    assert main(["-v", "--flavor-bash", "-f", str(history)]) == 0
    assert "Recorded" not in capsys.readouterr().err


def test_browser_switches_modes() -> None:
    """Test the interactive view re-ranks when keys are pressed."""
    entries = [HistoryEntry("git add a.txt"), HistoryEntry("git add b.txt"), HistoryEntry("ls")]

    async def run() -> TopCommandsApp:
        app = TopCommandsApp(entries, Options(count=2))
        async with app.run_test() as pilot:
            assert [r.label for r in app.ranked()] == ["git add", "ls"]
            await pilot.press("e")
            assert app.display_mode == "exact"
            assert [r.label for r in app.ranked()] == ["git add a.txt", "git add b.txt"]
            await pilot.press("minus")
            assert app.limit == 1
            await pilot.press("minus")
            assert app.limit == 1
            await pilot.press("t")
            assert app.ranked()[0] == RankedEntry("git", 2, 8)
        return app

    app = asyncio.run(run())
    assert app.display_mode == "heat"
