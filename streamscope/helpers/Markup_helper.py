############################################################################################################################################
# Markup Renderer
#
# Turns a line of device output into styled spans. Two style sources are combined:
#
#   ANSI SGR escape sequences   \x1b[31m red \x1b[0m
#   custom bracket tags         [red]red[/red], [red][bold]both[/][/]
#
# The line is first cut at the escape sequences, then the tag parser runs over every escape segment. The tag
# style stack is carried across the escape segments so either syntax can be nested in the other. Tag styles
# override the escape style key by key.
#
# Unknown tag names stay in the text as they are, a close tag with nothing open is dropped.
# Escape sequences other than SGR are removed.
#
#   render_markup(text, config) -> list of TextSpan
#   parse_ansi(text)            -> list of (text, style)
#   spans_to_html(spans)        -> html for a QTextEdit
#
# Maintainer: Urs Utzinger
############################################################################################################################################
#
import html
import re
from functools import lru_cache
from typing import List, Optional, Tuple
#
from streamscope.config import ANSI_SGR, ANSI_ESCAPE, ANSI_FOREGROUND, ANSI_BACKGROUND
from streamscope.helpers.Config_helper import MarkupConfig
from streamscope.helpers.Stream_models import TextSpan
#

CSS_NAMES = {
    "color":            "color",
    "background_color": "background-color",
    "font_weight":      "font-weight",
    "font_style":       "font-style",
    "text_decoration":  "text-decoration",
}

# ==============================================================================
# ANSI escape sequences
# ==============================================================================

def _extended_color(params: List[str], i: int) -> Tuple[Optional[str], int]:
    """
    38;5;n and 38;2;r;g;b (48 for background).
    Returns the color (or None) and the index of the last parameter consumed.
    """
    if i + 1 < len(params) and params[i + 1] == "5" and i + 2 < len(params):
        n = int(params[i + 2] or 0)
        if n < 8:
            return ANSI_FOREGROUND.get(str(30 + n)), i + 2
        if n < 16:
            return ANSI_FOREGROUND.get(str(90 + n - 8)), i + 2
        return None, i + 2
    if i + 1 < len(params) and params[i + 1] == "2" and i + 4 < len(params):
        r, g, b = (min(int(p or 0), 255) for p in params[i + 2:i + 5])
        return f"#{r:02x}{g:02x}{b:02x}", i + 4
    return None, len(params)

def apply_sgr(style: dict, codes: str) -> dict:
    ''' New style after the SGR parameters codes, e.g. "1;31" '''
    style = dict(style)
    params = codes.split(";") if codes else ["0"]
    i = 0
    while i < len(params):
        code = params[i] or "0"
        if code == "0":
            style = {}
        elif code == "1":
            style["font_weight"] = "bold"
        elif code == "3":
            style["font_style"] = "italic"
        elif code == "4":
            style["text_decoration"] = "underline"
        elif code == "22":
            style.pop("font_weight", None)
        elif code == "23":
            style.pop("font_style", None)
        elif code == "24":
            style.pop("text_decoration", None)
        elif code == "39":
            style.pop("color", None)
        elif code == "49":
            style.pop("background_color", None)
        elif code in ANSI_FOREGROUND:
            style["color"] = ANSI_FOREGROUND[code]
        elif code in ANSI_BACKGROUND:
            style["background_color"] = ANSI_BACKGROUND[code]
        elif code in ("38", "48"):
            color, i = _extended_color(params, i)
            if color:
                style["color" if code == "38" else "background_color"] = color
        i += 1
    return style

def parse_ansi(text: str) -> List[Tuple[str, dict]]:
    ''' Cut text at SGR sequences, other escape sequences are removed. Empty pieces are dropped. '''
    segments = []
    style = {}
    last = 0
    for match in ANSI_SGR.finditer(text):
        piece = ANSI_ESCAPE.sub("", text[last:match.start()])
        if piece:
            segments.append((piece, style))
        style = apply_sgr(style, match.group(1))
        last = match.end()
    piece = ANSI_ESCAPE.sub("", text[last:])
    if piece:
        segments.append((piece, style))
    return segments

# ==============================================================================
# Custom tags
# ==============================================================================

@lru_cache(maxsize=16)
def _tag_regex(tag_open: str, tag_close: str, close_marker: str) -> re.Pattern:
    return re.compile(
        f"{re.escape(tag_open)}({re.escape(close_marker)})?([\\w-]*){re.escape(tag_close)}"
    )

class _TagState:
    ''' Style stack of the tag parser, shared by all escape segments of a line '''

    def __init__(self):
        self.stack = []
        self.style = {}

    def open(self, overrides: dict) -> None:
        self.stack.append(self.style)
        merged = dict(self.style)
        merged.update(overrides)
        self.style = merged

    def close(self) -> None:
        if self.stack:
            self.style = self.stack.pop()

def _render_tags(text: str, ansi_style: dict, state: _TagState, regex: re.Pattern, tag_map: dict, out: List[TextSpan]) -> None:

    def emit(piece: str) -> None:
        if piece:
            style = dict(ansi_style)
            style.update(state.style)
            out.append(TextSpan(piece, style))

    last = 0
    for match in regex.finditer(text):
        closing, name = match.group(1), match.group(2)
        if closing:
            if name and name not in tag_map:
                continue                                                       # unknown tag, stays in the text
            emit(text[last:match.start()])
            state.close()
        else:
            tag = tag_map.get(name)
            if tag is None:
                continue
            emit(text[last:match.start()])
            state.open(tag.style)
        last = match.end()
    emit(text[last:])

def _merge(spans: List[TextSpan]) -> List[TextSpan]:
    ''' Join neighbours with the same style '''
    merged = []
    for span in spans:
        if merged and merged[-1].style == span.style:
            merged[-1] = TextSpan(merged[-1].text + span.text, span.style)
        else:
            merged.append(span)
    return merged

# ==============================================================================
# Rendering
# ==============================================================================

def render_markup(text: str, config: Optional[MarkupConfig] = None) -> List[TextSpan]:
    """
    Styled spans of text.

    With markup disabled only the escape sequences are interpreted.
    Malformed markup never raises, it is shown as text.
    """
    if config is None:
        config = MarkupConfig()

    segments = parse_ansi(text)
    if not config.enabled:
        return _merge([TextSpan(piece, dict(style)) for piece, style in segments])

    regex   = _tag_regex(config.tag_open, config.tag_close, config.close_marker)
    tag_map = config.tag_map
    state   = _TagState()
    spans   = []
    for piece, style in segments:
        _render_tags(piece, style, state, regex, tag_map, spans)
    return _merge(spans)

def strip_markup(text: str, config: Optional[MarkupConfig] = None) -> str:
    ''' Text without escape sequences and known tags '''
    return "".join(span.text for span in render_markup(text, config))

def spans_to_html(spans: List[TextSpan]) -> str:
    ''' Spans as html, unstyled text is only escaped '''
    parts = []
    for span in spans:
        text = html.escape(span.text)
        if span.style:
            css = ";".join(f"{CSS_NAMES[k]}:{v}" for k, v in span.style.items() if k in CSS_NAMES)
            parts.append(f'<span style="{css}">{text}</span>')
        else:
            parts.append(text)
    return "".join(parts)
