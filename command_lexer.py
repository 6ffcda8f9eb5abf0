# ============================================================================
# COMMAND LEXER
# ============================================================================

from __future__ import annotations

import re

from pygments.lexer import RegexLexer, include
from pygments.token import (
    Comment,
    Error,
    Keyword,
    Name,
    Number,
    Operator,
    Punctuation,
    String,
    Text,
    Token,
)
from rich.style import Style
from rich.syntax import Syntax, SyntaxTheme
from rich.text import Text as RichText
from textual.containers import VerticalScroll


class NonScrollableVerticalScroll(VerticalScroll):
    """Scroll container that leaves the arrow and paging keys to the app."""

    BINDINGS = [
        b
        for b in VerticalScroll.BINDINGS
        if b.key not in ["up", "down", "pageup", "pagedown", "home", "end"]
    ]


# Custom token types so Rich and Pygments know about them
Name.Argument = Token.Name.Argument
Name.Variable.Magic = Token.Name.Variable.Magic


class CommandLexer(RegexLexer):
    """
    Lexer for one recorded shell command line, as stored in a history file.
    Only the first word of each pipeline stage is treated as a program name.
    ```python
    syntax = Syntax("git commit -m 'msg'", CommandLexer(), theme=HistTopTheme())
    ```
    """

    name = "Shell command"
    aliases = ["shell-command"]
    filenames = []

    flags = re.MULTILINE

    tokens = {
        "_quoted": [
            (r"\\.", String.Escape),
            (r"\$\(", String.Interpol, "command_substitution"),
            (r"\$\{[^}]*\}", Name.Variable.Magic),
            (r"\$[a-zA-Z0-9_@*#?$!~-]+", Name.Variable),
            (r"'[^']*'?", String.Single),
            (r'"', String.Double, "string_double"),
        ],
        "root": [
            (r"\s+", Text),
            (r"#.*$", Comment),
            (r"\|\|?|&&|&|;", Operator),
            (r"[()]", Punctuation),
            (r"\b(if|then|else|elif|fi|for|while|do|done|case|esac|in)\b", Keyword.Reserved),
            (r"[a-zA-Z_][a-zA-Z0-9_]*=\S*", Name.Variable),
            include("_quoted"),
            (r"[^\s|&;()'\"]+", Name.Function, "args"),
        ],
        "args": [
            (r"\n", Text, "#pop"),
            (r"\|\|?|&&|&|;", Operator, "#pop"),
            (r"\s+", Text),
            (r"(?:--?)[a-zA-Z0-9][\w-]*", Name.Attribute),
            (r"--?(?=\s|$)", Name.Attribute),
            (r"=", Operator),
            (r"\b[0-9]+\b", Number.Integer),
            (r"[0-9]*[<>]+&?[0-9]*", Operator),
            include("_quoted"),
            (r"[^=\s;&|()<>'\"]+", Name.Argument),
        ],
        "string_double": [
            (r'"', String.Double, "#pop"),
            (r'\\(["$`\\])', String.Escape),
            (r"\$\(", String.Interpol, "command_substitution"),
            (r"\$\{[^}]*\}", Name.Variable.Magic),
            (r"\$[a-zA-Z0-9_@*#?$!~-]+", Name.Variable),
            (r'[^"\\$]+', String.Double),
            (r"[\\$]", String.Double),
        ],
        "command_substitution": [
            (r"\)", String.Interpol, "#pop"),
            include("root"),
        ],
    }


class HistTopTheme(SyntaxTheme):
    """Monokai Pro colours for the COMMAND column."""

    _RED = "#ff6188"
    _GREEN = "#a9dc76"
    _YELLOW = "#ffd866"
    _ORANGE = "#fc9867"
    _PURPLE = "#ab9df2"
    _CYAN = "#78dce8"
    _COMMENT_GRAY = "#727072"

    default_style = Style()

    styles = {
        Name.Function: Style(color=_GREEN, bold=True),  # git, cargo
        Name.Attribute: Style(color=_ORANGE),  # --release, -i
        Name.Argument: Style(),  # file names, free text
        Name.Variable: Style(color=_CYAN),
        Name.Variable.Magic: Style(color=_PURPLE),  # ${PATH}
        Number: Style(color=_CYAN),
        Comment: Style(color=_COMMENT_GRAY, italic=True),
        Keyword: Style(color=_RED, bold=True),
        Operator: Style(color=_RED),
        Punctuation: Style(),
        String: Style(color=_YELLOW),
        String.Escape: Style(color=_PURPLE),
        String.Interpol: Style(color=_PURPLE, bold=True),
        Error: Style(color=_RED, bold=True),
    }

    @classmethod
    def get_style_for_token(cls, t):
        while t not in cls.styles and t.parent is not None:
            t = t.parent
        return cls.styles.get(t, cls.default_style)

    @classmethod
    def get_background_style(cls):
        return Style()


_SYNTAX = Syntax("", CommandLexer(), theme=HistTopTheme(), background_color="default")


def highlight_command(command: str) -> RichText:
    """→ Colours a command line for display; newlines are shown as spaces"""
    flat = command.replace("\n", " ")
    text = _SYNTAX.highlight(flat)
    if text.plain.endswith("\n"):
        text.right_crop(1)
    return text
