"""Encoding of Python values, chiefly dataclasses, as XML elements."""

from __future__ import annotations

import dataclasses
import io
import math
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Protocol, runtime_checkable

from .tokens import (
    Attr,
    Name,
    StartElement,
    TokenWriter,
    XMLError,
    escape_cdata,
)

HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

_XML_NAME_FIELD = "xml_name"
_BYTES = (bytes, bytearray, memoryview)
_SIMPLE = (bool, int, float, str) + _BYTES


class UnsupportedTypeError(XMLError):
    """Raised when a value of a type that has no XML form is encoded."""

    def __init__(self, type_: type):
        self.type = type_
        super().__init__(f"xml: unsupported type: {type_.__name__}")


@runtime_checkable
class Marshaler(Protocol):
    """A value that writes its own XML elements."""

    def marshal_xml(self, encoder: "Encoder", start: StartElement) -> None:
        """Write zero or more elements through encoder."""


@runtime_checkable
class MarshalerAttr(Protocol):
    """A value that produces its own XML attribute."""

    def marshal_xml_attr(self, name: Name) -> Attr:
        """Return the attribute; one with an empty local name is dropped."""


@runtime_checkable
class TextMarshaler(Protocol):
    """A value that encodes itself as text."""

    def marshal_text(self):
        """Return the text form as str or bytes."""


def xml_field(tag: str = "", *, default=dataclasses.MISSING,
              default_factory=dataclasses.MISSING):
    """Declare a dataclass field with an XML tag such as "ns a>b,omitempty"."""
    return dataclasses.field(
        default=default, default_factory=default_factory, metadata={"xml": tag}
    )


@dataclasses.dataclass(frozen=True)
class _FieldInfo:
    attr_name: str
    name: str
    xmlns: str
    mode: str
    omit_empty: bool
    parents: tuple


_MODES = ("attr", "chardata", "cdata", "innerxml", "comment")


def _invalid_tag(cls: type, field_name: str, tag: str) -> XMLError:
    return XMLError(
        f"xml: invalid tag in field {field_name} of type {cls.__name__}: {tag!r}"
    )


def _parse_field(cls: type, field_name: str, tag: str) -> _FieldInfo | None:
    if tag == "-":
        return None
    xmlns = ""
    rest = tag
    space = rest.find(" ")
    if space >= 0:
        xmlns, rest = rest[:space], rest[space + 1:]
    name, *flags = rest.split(",")
    mode = "element"
    omit_empty = False
    for flag in flags:
        if flag in _MODES:
            if mode != "element":
                raise _invalid_tag(cls, field_name, tag)
            mode = flag
        elif flag == "omitempty":
            omit_empty = True
        elif flag in ("any", ""):
            continue
        else:
            raise _invalid_tag(cls, field_name, tag)
    if mode in ("chardata", "cdata", "innerxml", "comment") and (name or xmlns):
        raise _invalid_tag(cls, field_name, tag)

    parents: tuple = ()
    if ">" in name:
        if mode == "attr":
            raise XMLError(f"xml: {name} chain not valid with attr flag")
        parts = name.split(">")
        if parts[0] == "":
            parts[0] = field_name
        if parts[-1] == "":
            raise XMLError(f"xml: trailing '>' in field {field_name} of type {cls.__name__}")
        name, parents = parts[-1], tuple(parts[:-1])
    if not name and mode in ("element", "attr"):
        name = field_name
    return _FieldInfo(field_name, name, xmlns, mode, omit_empty, parents)


@lru_cache(maxsize=None)
def _type_info(cls: type):
    """Return (xml_name info or None, field infos) for a dataclass type."""
    xmlname = None
    infos = []
    for f in dataclasses.fields(cls):
        tag = f.metadata.get("xml", "")
        if f.name == _XML_NAME_FIELD:
            if "," in tag:
                raise _invalid_tag(cls, f.name, tag)
            xmlns, _, local = tag.rpartition(" ")
            xmlname = (xmlns, local)
            continue
        if f.name.startswith("_"):
            continue
        info = _parse_field(cls, f.name, tag)
        if info is not None:
            infos.append(info)
    return xmlname, tuple(infos)


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set, frozenset) + _BYTES):
        return len(value) == 0
    if isinstance(value, (bool, int, float)):
        return not value
    return False


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    count = len(digits)
    point = count + exponent
    exp10 = point - 1
    if exp10 < -4 or exp10 >= 6:
        mantissa = digits[0] + ("." + digits[1:] if count > 1 else "")
        exp_sign = "+" if exp10 >= 0 else "-"
        return f"{sign}{mantissa}e{exp_sign}{abs(exp10):02d}"
    if point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if point >= count:
        return sign + digits + "0" * (point - count)
    return f"{sign}{digits[:point]}.{digits[point:]}"


def _format_datetime(value: datetime) -> str:
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset()
    if offset is None:
        return text
    seconds = int(offset.total_seconds())
    if seconds == 0:
        return text + "Z"
    sign = "+" if seconds > 0 else "-"
    hours, minutes = divmod(abs(seconds) // 60, 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def _marshal_text(value) -> str | None:
    """Return the text form of a text-marshalling value, else None."""
    if isinstance(value, TextMarshaler):
        text = value.marshal_text()
        return bytes(text).decode("utf-8", "replace") if isinstance(text, _BYTES) else str(text)
    if isinstance(value, datetime):
        return _format_datetime(value)
    return None


def _simple_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return int.__repr__(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, str):
        return str.__str__(value)
    if isinstance(value, _BYTES):
        return bytes(value).decode("utf-8", "replace")
    raise UnsupportedTypeError(type(value))


def _is_struct(value) -> bool:
    return isinstance(value, Name) or (
        dataclasses.is_dataclass(value) and not isinstance(value, type)
    )


class Encoder(TokenWriter):
    """Writes the XML encoding of values to a stream."""

    def encode(self, value) -> None:
        """Write the XML encoding of value and flush."""
        self._marshal_value(value, None, None)
        self.flush()

    def encode_element(self, value, start: StartElement) -> None:
        """Write value using start as the outermost tag and flush."""
        self._marshal_value(value, None, start)
        self.flush()

    def _default_start(self, value, finfo, template) -> StartElement:
        if template is not None:
            return StartElement(template.name, list(template.attr))
        if finfo is not None and finfo.name:
            return StartElement(Name(finfo.xmlns, finfo.name))
        return StartElement(Name(local=type(value).__name__))

    def _marshal_value(self, value, finfo, template) -> None:
        if template is not None and not template.name.local:
            raise XMLError("xml: EncodeElement of StartElement with missing name")
        if value is None:
            return
        if finfo is not None and finfo.omit_empty and _is_empty(value):
            return

        if isinstance(value, Marshaler):
            self._marshal_interface(value, self._default_start(value, finfo, template))
            return
        text = _marshal_text(value)
        if text is not None:
            start = self._default_start(value, finfo, template)
            self._write_start(start)
            self._write_escaped(text)
            self._write_end(start.name)
            return
        if isinstance(value, (list, tuple)):
            for item in value:
                self._marshal_value(item, finfo, template)
            return

        struct = _is_struct(value)
        if struct and not isinstance(value, Name):
            xmlname, fields = _type_info(type(value))
        elif struct or isinstance(value, _SIMPLE):
            xmlname, fields = None, ()
        else:
            raise UnsupportedTypeError(type(value))

        name = Name()
        attrs: list = []
        if template is not None:
            name = template.name
            attrs.extend(template.attr)
        elif xmlname is not None:
            if xmlname[1]:
                name = Name(*xmlname)
            else:
                current = getattr(value, _XML_NAME_FIELD, None)
                if isinstance(current, Name) and current.local:
                    name = current
        if not name.local and finfo is not None:
            name = Name(finfo.xmlns, finfo.name)
        if not name.local:
            name = Name(local=type(value).__name__)

        for info in fields:
            if info.mode != "attr":
                continue
            field_value = getattr(value, info.attr_name)
            if field_value is None or (info.omit_empty and _is_empty(field_value)):
                continue
            self._marshal_attr(attrs, Name(info.xmlns, info.name), field_value)

        self._write_start(StartElement(name, attrs))
        if struct:
            self._marshal_struct(fields, value)
        else:
            self._write_escaped(_simple_text(value))
        self._write_end(name)
        self._check_error()

    def _marshal_attr(self, attrs: list, name: Name, value) -> None:
        if isinstance(value, MarshalerAttr):
            attr = value.marshal_xml_attr(name)
            if attr.name.local:
                attrs.append(attr)
            return
        text = _marshal_text(value)
        if text is not None:
            attrs.append(Attr(name, text))
            return
        if value is None:
            return
        if isinstance(value, (list, tuple)):
            for item in value:
                self._marshal_attr(attrs, name, item)
            return
        if isinstance(value, Attr):
            attrs.append(value)
            return
        attrs.append(Attr(name, _simple_text(value)))

    def _marshal_interface(self, value, start: StartElement) -> None:
        self._tags.append(Name())
        depth = len(self._tags)
        value.marshal_xml(self, start)
        if len(self._tags) > depth:
            raise XMLError(
                f"xml: {type(value).__name__}.MarshalXML wrote invalid XML: "
                f"<{self._tags[-1].local}> not closed"
            )
        del self._tags[depth - 1:]

    def _marshal_struct(self, fields, value) -> None:
        stack: list[str] = []

        def trim(parents) -> None:
            split = 0
            for have, want in zip(stack, parents):
                if have != want:
                    break
                split += 1
            for parent in reversed(stack[split:]):
                self._write_end(Name(local=parent))
            del stack[split:]

        for info in fields:
            if info.mode == "attr":
                continue
            field_value = getattr(value, info.attr_name)

            if info.mode in ("chardata", "cdata"):
                trim(info.parents)
                text = _marshal_text(field_value)
                if text is None and isinstance(field_value, _SIMPLE):
                    text = _simple_text(field_value)
                if text is not None:
                    if info.mode == "cdata":
                        self._write(escape_cdata(text))
                    else:
                        self._write_escaped(text)
                continue

            if info.mode == "comment":
                trim(info.parents)
                if not isinstance(field_value, (str,) + _BYTES):
                    raise XMLError(
                        f"xml: bad type for comment field of {type(value).__name__}"
                    )
                text = _simple_text(field_value)
                if not text:
                    continue
                if "--" in text:
                    raise XMLError('xml: comments must not contain "--"')
                self._write_indent(0)
                self._write("<!--" + text)
                if text.endswith("-"):
                    self._write(" ")
                self._write("-->")
                continue

            if info.mode == "innerxml":
                if isinstance(field_value, (str,) + _BYTES):
                    self._write(_simple_text(field_value))
                    continue
            else:
                trim(info.parents)
                if len(info.parents) > len(stack) and field_value is not None:
                    for parent in info.parents[len(stack):]:
                        self._write_start(StartElement(Name(local=parent)))
                        stack.append(parent)
            self._marshal_value(field_value, info, None)
        trim(())
        self._check_error()


def marshal(value) -> str:
    """Return the XML encoding of value."""
    buffer = io.StringIO()
    Encoder(buffer).encode(value)
    return buffer.getvalue()


def marshal_indent(value, prefix: str, indent: str) -> str:
    """Like marshal, but each element starts on a new indented line."""
    buffer = io.StringIO()
    encoder = Encoder(buffer)
    encoder.indent(prefix, indent)
    encoder.encode(value)
    return buffer.getvalue()