# xmlmarshal

`xmlmarshal` writes Python values and dataclasses as XML. It has two layers:

- `xmlmarshal.marshal` encodes whole values through `marshal`,
  `marshal_indent` and `Encoder`. Fields are controlled by `xml_field` tags.
- `xmlmarshal.tokens` writes XML one token at a time. It provides
  `TokenWriter` and the token types `StartElement`, `EndElement`, `CharData`,
  `Comment`, `ProcInst` and `Directive`.

It uses only the standard library and needs Python 3.10 or later.

## Marshalling values

```python
from dataclasses import dataclass
from xmlmarshal.marshal import marshal, marshal_indent, xml_field

@dataclass
class Port:
    xml_name: None = xml_field("port", default=None)
    Type: str = xml_field("type,attr,omitempty", default="")
    Number: str = xml_field(",chardata", default="")

marshal(Port(Type="ssl", Number="443"))
# '<port type="ssl">443</port>'
```

`marshal` and `marshal_indent` return a `str`.

### Element names

An element's name is the first of these that applies:

1. The `start` passed to `Encoder.encode_element`.
2. The tag on a field named `xml_name`, such as `"ns local"`. If that tag is
   empty, the field's value is used when it is a `Name` with a local part.
3. The name in the tag of the field that holds the value, or the field name.
4. The name of the value's type.

Fields whose names begin with an underscore are not written.

### Field tags

- `"name"` or `"ns name"` sets the element name and, optionally, its name
  space.
- `"a>b>c"` puts the element inside parents `a` and `b`. Fields that come one
  after another and share the same parents go inside one parent element.
- `"name,attr"` writes the field as an attribute.
- `",chardata"` writes the field as character data. `",cdata"` writes it
  inside `<![CDATA[...]]>`.
- `",innerxml"` writes a string or bytes value exactly as it is.
- `",comment"` writes the field as an XML comment. A comment that contains
  `--` raises `XMLError`.
- `"omitempty"` skips values that are `None`, false, zero, or empty.
- `",any"` is accepted. The field is then written as an ordinary element.
- `"-"` skips the field.

### How values are written

- `bool` is written as `true` or `false`.
- `int` and `float` are written as numbers. Floats use the shortest form,
  for example `9.3e+13`.
- `str`, `bytes`, `bytearray` and `memoryview` are written as escaped text.
- `datetime` is written in RFC 3339 form.
- A list or tuple is written as one element per item.
- `None` produces no output.
- A value with no XML form, such as a dict, raises `UnsupportedTypeError`,
  which is a subclass of `XMLError`.

### Custom output

An object can take over its own output by implementing one of these:

- `Marshaler.marshal_xml(encoder, start)` writes its elements through the
  encoder. Every tag it opens must be closed.
- `MarshalerAttr.marshal_xml_attr(name)` returns an `Attr`. If the attribute
  has an empty local name, it is left out.
- `TextMarshaler.marshal_text()` returns `str` or `bytes`, which is written
  as text.

### Indentation

`marshal_indent(value, prefix, indent)` starts each element on a new line.
The line begins with `prefix`, followed by one copy of `indent` for each
level of nesting.

`HEADER` holds a standard `<?xml ...?>` declaration. It is never added
automatically.

## Writing to a stream

```python
import io
from xmlmarshal.marshal import Encoder

buf = io.BytesIO()
Encoder(buf).encode(Port(Number="80"))
# buf.getvalue() == b'<port>80</port>'
```

Binary streams receive UTF-8 bytes, and text streams receive `str`. Output is
buffered until `flush()`. `encode` and `encode_element` call `flush()` for
you.

## Writing tokens

```python
import io
from xmlmarshal.tokens import TokenWriter, StartElement, EndElement, CharData, Name

buf = io.BytesIO()
w = TokenWriter(buf)
w.encode_token(StartElement(Name("", "greeting")))
w.encode_token(CharData(b"hello"))
w.encode_token(EndElement(Name("", "greeting")))
w.flush()
# buf.getvalue() == b'<greeting>hello</greeting>'
```

An attribute whose `Name` has a name space gets a generated prefix, which is
declared on the element.

Malformed input raises `XMLError`, for example:

- an end tag that does not match its start tag;
- a comment that contains `-->`;
- a processing instruction with an invalid target;
- an `xml` declaration that is not the first token;
- a directive whose angle brackets do not balance.

`tokens` also provides these helpers:

- `escape_text(data)` escapes text for use in XML.
- `escape_cdata(data)` wraps text in CDATA sections.
- `is_name(text)` checks that a string is a valid XML name.
- `is_valid_directive(directive)` checks that a directive's brackets balance.

## What it does not do

The package only produces XML. It has no parser and no decoder, so it cannot
read XML back into Python values.

## Running the tests

```
pip install -e .[test]
pytest
```