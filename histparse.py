"""
histparse.py - Shell history decoding and command signatures

Turns the raw bytes of a Bash or Zsh history file into `HistoryEntry` objects,
splits each command into tokens, and derives the keys `histtop` counts by.

Flavors
-------
- zsh:  ": <epoch>:<duration>;command" (EXTENDED_HISTORY) or bare command lines.
        Multi-line commands are stored with a trailing backslash on every line
        but the last. Bytes >= 0x83 are "metafied" on disk.
- bash: one command per line. With HISTTIMEFORMAT set, each command is preceded
        by a "#<epoch>" comment line.

Display modes
-------------
- exact: the whole trimmed command
- fuzzy: the program name plus leading flags and known subcommands
- heat:  every token on its own
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator

# ============================================================================
# CONSTANTS & PATTERNS
# ============================================================================

FLAVORS = ("zsh", "bash")
MODES = ("fuzzy", "exact", "heat")

ZSH_EXTENDED_RE = re.compile(r"^:\s*(\d{1,19}):(\d{1,19});(.*)$", re.DOTALL | re.ASCII)
BASH_TIMESTAMP_RE = re.compile(r"^#(\d+)\s*$")
SUDO_RE = re.compile(r"^sudo\s+")

ZSH_META = 0x83

# Words that keep a fuzzy signature going instead of ending it.
SUBCOMMAND_KEYWORDS = frozenset({
    # vcs
    "add", "branch", "checkout", "clone", "commit", "diff", "fetch", "init",
    "log", "merge", "pull", "push", "rebase", "reset", "restore", "stash",
    "status", "switch", "tag",
    # build tools & package managers
    "build", "check", "clean", "install", "run", "test", "uninstall",
    "update", "upgrade",
    # containers & services
    "compose", "down", "exec", "logs", "ps", "restart", "start", "stop", "up",
    # generic verbs
    "list", "remove", "show",
})


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass(frozen=True)
class HistoryEntry:
    """One recorded command invocation."""

    text: str
    timestamp: int | None = None
    duration: int | None = None


# ============================================================================
# LINE DECODER
# ============================================================================


def unmetafy(data: bytes) -> bytes:
    """→ Reverses zsh's on-disk escaping: 0x83 marks a byte stored XOR 0x20"""
    if ZSH_META not in data:
        return data
    out = bytearray()
    it = iter(data)
    for byte in it:
        if byte == ZSH_META:
            nxt = next(it, None)
            if nxt is None:
                break
            out.append(nxt ^ 0x20)
        else:
            out.append(byte)
    return bytes(out)


def _continues(line: str) -> bool:
    """A line continues when it ends in an odd number of backslashes."""
    trailing = len(line) - len(line.rstrip("\\"))
    return trailing % 2 == 1


def join_continuations(lines: Iterable[str]) -> Iterator[str]:
    """→ Glues backslash-continued physical lines into logical entries"""
    pending: list[str] = []
    for line in lines:
        if _continues(line):
            pending.append(line[:-1])
            continue
        pending.append(line)
        yield "\n".join(pending)
        pending = []
    if pending:
        yield "\n".join(pending)


def parse_zsh_entry(logical_line: str) -> HistoryEntry | None:
    """→ Strips the EXTENDED_HISTORY prefix if there is one, else keeps the line as-is"""
    text = logical_line
    timestamp = duration = None
    if match := ZSH_EXTENDED_RE.match(logical_line):
        timestamp, duration = int(match.group(1)), int(match.group(2))
        text = match.group(3)
    text = text.strip()
    if not text:
        return None
    return HistoryEntry(text=text, timestamp=timestamp, duration=duration)


def _decode_zsh(data: bytes) -> Iterator[HistoryEntry]:
    text = unmetafy(data).decode("utf-8", errors="replace")
    for logical_line in join_continuations(text.splitlines()):
        if entry := parse_zsh_entry(logical_line):
            yield entry


def _decode_bash(data: bytes) -> Iterator[HistoryEntry]:
    text = data.decode("utf-8", errors="replace")
    pending_ts: int | None = None
    for line in text.splitlines():
        if match := BASH_TIMESTAMP_RE.match(line):
            pending_ts = int(match.group(1))
            continue
        if not line.strip():
            continue
        yield HistoryEntry(text=line.strip(), timestamp=pending_ts)
        pending_ts = None


def decode_history(data: bytes | str, flavor: str) -> Iterator[HistoryEntry]:
    """Lazily decode history file content into entries, in file order.

    Malformed records never raise: a line whose prefix can't be parsed is kept
    as literal command text, and blank entries are dropped.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    if flavor == "zsh":
        return _decode_zsh(data)
    if flavor == "bash":
        return _decode_bash(data)
    raise ValueError(f"Unknown history flavor: {flavor!r}")


def _strip_sudo(text: str) -> str:
    """→ Drops a leading `sudo` so privileged runs count with the plain ones"""
    return SUDO_RE.sub("", text, count=1)


# ============================================================================
# TOKENIZER
# ============================================================================


def tokenize(command: str) -> list[str]:
    """Split a command on whitespace, keeping quoted runs together.

    Quotes are removed from the token value. An unterminated quote swallows the
    rest of the line into the current token.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    quote: str | None = None

    for ch in command:
        if quote:
            if ch == quote:
                quote = None
            else:
                current.append(ch)
        elif ch in "'\"":
            quote = ch
            in_token = True
        elif ch.isspace():
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(ch)
            in_token = True

    if in_token:
        tokens.append("".join(current))
    return tokens


# ============================================================================
# SIGNATURE BUILDER
# ============================================================================


def exact_signature(text: str) -> tuple[str, str]:
    """→ The whole trimmed command is both key and label"""
    key = text.strip()
    return key, key


def fuzzy_signature(
    tokens: list[str], keywords: frozenset[str] | set[str] = SUBCOMMAND_KEYWORDS
) -> tuple[str, str] | None:
    """Group a command by its program name, leading flags and known subcommands.

    The prefix ends at the first token that is neither flag-like (starts with
    "-") nor in `keywords`, so `git add -i` stays `git add -i` while
    `git add notes.txt` becomes `git add`.
    """
    if not tokens:
        return None
    prefix = [tokens[0]]
    for token in tokens[1:]:
        if token.startswith("-") or token in keywords:
            prefix.append(token)
        else:
            break
    key = " ".join(prefix)
    return key, key


def heat_signatures(tokens: list[str]) -> Iterator[tuple[str, str]]:
    """→ Every token occurrence counts on its own"""
    for token in tokens:
        if token:
            yield token, token


def iter_signatures(
    entries: Iterable[HistoryEntry],
    mode: str,
    keywords: frozenset[str] | set[str] = SUBCOMMAND_KEYWORDS,
    strip_sudo: bool = False,
) -> Iterator[tuple[str, str]]:
    """Yield the (key, label) pairs a run counts for the given display mode.

    With `strip_sudo` a leading `sudo` is dropped from every command first.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown display mode: {mode!r}")

    for entry in entries:
        text = _strip_sudo(entry.text) if strip_sudo else entry.text
        if mode == "exact":
            if text.strip():
                yield exact_signature(text)
            continue

        tokens = tokenize(text)
        if mode == "heat":
            yield from heat_signatures(tokens)
        elif signature := fuzzy_signature(tokens, keywords):
            yield signature
