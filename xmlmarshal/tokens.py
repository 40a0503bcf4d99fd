"""XML tokens and a buffered writer that serialises them to a stream."""

from __future__ import annotations

import io
import unicodedata
from dataclasses import dataclass, field
from typing import Union

XML_URL = "http://www.w3.org/XML/1998/namespace"
XML_PREFIX = "xml"

_BEGIN_COMMENT = "<!--"
_END_COMMENT = "-->"
_END_PROC_INST = "?>"
_CDATA_START = "<![CDATA["
_CDATA_END = "]]>"
_CDATA_ESCAPE = "]]]]><![CDATA[>"

_ESCAPES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}

TextLike = Union[str, bytes, bytearray, memoryview]


class XMLError(Exception):
    """Raised when XML cannot be produced from the given input."""


def _as_text(data) -> str:
    if isinstance(data, _TextToken):
        return data.data
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data).decode("utf-8", errors="replace")
    if isinstance(data, str):
        return data
    raise TypeError(f"expected text or bytes, got {type(data).__name__}")


@dataclass(frozen=True)
class Name:
    """An XML name: a name space and a local part."""

    space: str = ""
    local: str = ""


@dataclass
class Attr:
    """An attribute of a start element."""

    name: Name
    value: str = ""


@dataclass
class StartElement:
    """An opening tag with its attributes."""

    name: Name
    attr: list = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.attr is None:
            self.attr = []


@dataclass(frozen=True)
class EndElement:
    """A closing tag."""

    name: Name


@dataclass(frozen=True)
class _TextToken:
    data: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", _as_text(self.data))


class CharData(_TextToken):
    """Character data, escaped when written."""


class Comment(_TextToken):
    """An XML comment, written between <!-- and -->."""


class Directive(_TextToken):
    """A directive such as a DOCTYPE, written between <! and >."""


@dataclass(frozen=True)
class ProcInst:
    """A processing instruction <?target inst?>."""

    target: str
    inst: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "inst", _as_text(self.inst))


def _in_character_range(ch: str) -> bool:
    code = ord(ch)
    return (
        code in (0x09, 0x0A, 0x0D)
        or 0x20 <= code <= 0xD7FF
        or 0xE000 <= code <= 0xFFFD
        or 0x10000 <= code <= 0x10FFFF
    )


def _escape(data, escape_newline: bool) -> str:
    pieces = []
    for ch in _as_text(data):
        replacement = _ESCAPES.get(ch)
        if replacement is not None and (ch != "\n" or escape_newline):
            pieces.append(replacement)
        elif _in_character_range(ch):
            pieces.append(ch)
        else:
            pieces.append("\ufffd")
    return "".join(pieces)


def escape_text(data) -> str:
    """Return data escaped for use as XML text or attribute value."""
    return _escape(data, escape_newline=True)


def escape_cdata(data) -> str:
    """Return data wrapped in CDATA sections; empty input gives ''."""
    text = _as_text(data)
    if not text:
        return ""
    return _CDATA_START + text.replace(_CDATA_END, _CDATA_ESCAPE) + _CDATA_END


def _is_name_start(ch: str) -> bool:
    return ch in "_:" or unicodedata.category(ch) in ("Lu", "Ll", "Lt", "Lo", "Nl")


def _is_name_char(ch: str) -> bool:
    return (
        _is_name_start(ch)
        or ch in "-.\u00b7"
        or unicodedata.category(ch) in ("Nd", "Mn", "Mc", "Lm")
    )


def is_name(text) -> bool:
    """Report whether text is a valid XML name."""
    value = _as_text(text)
    if not value or not _is_name_start(value[0]):
        return False
    return all(_is_name_char(ch) for ch in value[1:])


def is_valid_directive(directive) -> bool:
    """Report whether angle brackets in a directive are matched.

    Brackets inside quotes and comments are ignored.
    """
    text = _as_text(directive)
    depth = 0
    in_quote = ""
    in_comment = False
    for i, ch in enumerate(text):
        if in_comment:
            if ch == ">":
                start = i + 1 - len(_END_COMMENT)
                if start >= 0 and text[start : i + 1] == _END_COMMENT:
                    in_comment = False
        elif in_quote:
            if ch == in_quote:
                in_quote = ""
        elif ch in "'\"":
            in_quote = ch
        elif ch == "<":
            if (
                i + len(_BEGIN_COMMENT) < len(text)
                and text[i : i + len(_BEGIN_COMMENT)] == _BEGIN_COMMENT
            ):
                in_comment = True
            else:
                depth += 1
        elif ch == ">":
            if depth == 0:
                return False
            depth -= 1
    return depth == 0 and not in_quote and not in_comment


class TokenWriter:
    """Writes XML tokens to a stream, buffering until flush().

    The stream may be binary (receives UTF-8 bytes) or a text stream.
    """

    def __init__(self, stream):
        self._stream = stream
        self._text_stream = isinstance(stream, io.TextIOBase)
        self._pending: list[str] = []
        self._error: BaseException | None = None
        self._prefix = ""
        self._indent = ""
        self._depth = 0
        self._indented_in = False
        self._put_newline = False
        self._seq = 0
        self._attr_ns: dict[str, str] = {}
        self._attr_prefix: dict[str, str] = {}
        self._prefixes: list[str] = []
        self._tags: list[Name] = []

    def indent(self, prefix: str, indent: str) -> None:
        """Start each element on a new line with prefix and nested indents."""
        self._prefix = prefix
        self._indent = indent

    def encode_token(self, token) -> None:
        """Write one token; the output stays buffered until flush()."""
        if isinstance(token, StartElement):
            self._write_start(token)
        elif isinstance(token, EndElement):
            self._write_end(token.name)
        elif isinstance(token, CharData):
            self._write(_escape(token.data, escape_newline=False))
        elif isinstance(token, Comment):
            if _END_COMMENT in token.data:
                raise XMLError("xml: EncodeToken of Comment containing --> marker")
            self._write(_BEGIN_COMMENT + token.data + _END_COMMENT)
        elif isinstance(token, ProcInst):
            self._write_proc_inst(token)
        elif isinstance(token, Directive):
            if not is_valid_directive(token):
                raise XMLError(
                    "xml: EncodeToken of Directive containing wrong < or > markers"
                )
            self._write("<!" + token.data + ">")
        else:
            raise XMLError("xml: EncodeToken of invalid token type")
        self._check_error()

    def flush(self) -> None:
        """Write buffered output to the underlying stream."""
        self._check_error()
        if not self._pending:
            return
        text = "".join(self._pending)
        self._pending.clear()
        payload = text if self._text_stream else text.encode("utf-8")
        try:
            self._stream.write(payload)
        except Exception as exc:
            self._error = exc
            raise

    # Internal machinery shared with the value encoder.

    @property
    def _has_buffered(self) -> bool:
        return any(self._pending)

    def _check_error(self) -> None:
        if self._error is not None:
            raise self._error

    def _write(self, text: str) -> None:
        if text:
            self._pending.append(text)

    def _write_escaped(self, data, escape_newline: bool = True) -> None:
        self._write(_escape(data, escape_newline))

    def _write_proc_inst(self, token: ProcInst) -> None:
        if token.target == "xml" and self._has_buffered:
            raise XMLError(
                "xml: EncodeToken of ProcInst xml target only valid for xml "
                "declaration, first token encoded"
            )
        if not is_name(token.target):
            raise XMLError("xml: EncodeToken of ProcInst with invalid Target")
        if _END_PROC_INST in token.inst:
            raise XMLError("xml: EncodeToken of ProcInst containing ?> marker")
        self._write("<?" + token.target)
        if token.inst:
            self._write(" " + token.inst)
        self._write("?>")

    def _create_attr_prefix(self, url: str) -> str:
        existing = self._attr_prefix.get(url)
        if existing:
            return existing
        if url == XML_URL:
            return XML_PREFIX

        prefix = url.rstrip("/")
        slash = prefix.rfind("/")
        if slash >= 0:
            prefix = prefix[slash + 1 :]
        if not prefix or not is_name(prefix) or ":" in prefix:
            prefix = "_"
        if len(prefix) >= 3 and prefix[:3].lower() == "xml":
            prefix = "_" + prefix
        if self._attr_ns.get(prefix):
            while True:
                self._seq += 1
                candidate = f"{prefix}_{self._seq}"
                if not self._attr_ns.get(candidate):
                    prefix = candidate
                    break

        self._attr_prefix[url] = prefix
        self._attr_ns[prefix] = url
        self._write(f'xmlns:{prefix}="')
        self._write_escaped(url)
        self._write('" ')
        self._prefixes.append(prefix)
        return prefix

    def _pop_prefix(self) -> None:
        while self._prefixes:
            prefix = self._prefixes.pop()
            if not prefix:
                break
            self._attr_prefix.pop(self._attr_ns.get(prefix, ""), None)
            self._attr_ns.pop(prefix, None)

    def _write_start(self, start: StartElement) -> None:
        if not start.name.local:
            raise XMLError("xml: start tag with no name")
        self._tags.append(start.name)
        self._prefixes.append("")

        self._write_indent(1)
        self._write("<" + start.name.local)
        if start.name.space:
            self._write(' xmlns="')
            self._write_escaped(start.name.space)
            self._write('"')

        for attr in start.attr:
            name = attr.name
            if not name.local:
                continue
            self._write(" ")
            if name.space:
                self._write(self._create_attr_prefix(name.space) + ":")
            self._write(name.local + '="')
            self._write_escaped(attr.value)
            self._write('"')
        self._write(">")

    def _write_end(self, name: Name) -> None:
        if not name.local:
            raise XMLError("xml: end tag with no name")
        if not self._tags or not self._tags[-1].local:
            raise XMLError(f"xml: end tag </{name.local}> without start tag")
        top = self._tags[-1]
        if top != name:
            if top.local != name.local:
                raise XMLError(
                    f"xml: end tag </{name.local}> does not match start tag <{top.local}>"
                )
            raise XMLError(
                f"xml: end tag </{name.local}> in namespace {name.space} does not "
                f"match start tag <{top.local}> in namespace {top.space}"
            )
        self._tags.pop()

        self._write_indent(-1)
        self._write("</" + name.local + ">")
        self._pop_prefix()

    def _write_indent(self, depth_delta: int) -> None:
        if not self._prefix and not self._indent:
            return
        if depth_delta < 0:
            self._depth -= 1
            if self._indented_in:
                self._indented_in = False
                return
            self._indented_in = False
        if self._put_newline:
            self._write("\n")
        else:
            self._put_newline = True
        self._write(self._prefix)
        self._write(self._indent * self._depth)
        if depth_delta > 0:
            self._depth += 1
            self._indented_in = True