"""Index-based cursor over DER-encoded ASN.1 buffers (no parse tree is built)."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, replace


TAG_INTEGER = 0x02
TAG_BIT_STRING = 0x03
TAG_SEQUENCE = 0x30
TAG_CONSTRUCTED = 0x20
TAG_CONTEXT_0 = 0xA0

# Four length octets already describe a 4 GiB element.
MAX_LENGTH_OCTETS = 4


class DerError(ValueError):
    """Base class for structural DER failures."""


class MalformedEncoding(DerError):
    """Length prefix, tag or offset violates DER or the buffer bounds."""


class NotConstructedType(DerError):
    """Descent requested into a primitive element."""


class NoMoreSiblings(DerError):
    """Traversal walked past the last element of its parent."""


@dataclass(frozen=True)
class DerNode:
    """Location of one element inside a specific buffer.

    ``tag_offset`` points at the identifier octet, ``content_offset`` at the
    first content octet and ``length`` is the content length. ``limit`` is the
    end offset of the enclosing element (the node's own end for a root), which
    is what makes sibling traversal bounded.
    """

    tag_offset: int
    content_offset: int
    length: int
    limit: int

    @property
    def end(self) -> int:
        return self.content_offset + self.length


def _read_element(buffer: bytes, offset: int, limit: int) -> DerNode:
    if offset < 0 or offset >= limit or limit > len(buffer):
        raise MalformedEncoding(f"element offset {offset} outside bounds (limit={limit})")

    o = offset + 1
    if buffer[offset] & 0x1F == 0x1F:
        # High-tag-number form: base-128 continuation octets.
        while True:
            if o >= limit:
                raise MalformedEncoding(f"truncated high-tag-number identifier at offset {offset}")
            more = buffer[o] & 0x80
            o += 1
            if not more:
                break

    if o >= limit:
        raise MalformedEncoding(f"missing length octet at offset {o}")
    first = buffer[o]
    o += 1

    if first < 0x80:
        length = first
    elif first == 0x80:
        raise MalformedEncoding(f"indefinite length at offset {o - 1} is not DER")
    else:
        num_octets = first & 0x7F
        if num_octets > MAX_LENGTH_OCTETS or first == 0xFF:
            raise MalformedEncoding(f"unsupported length prefix 0x{first:02x} at offset {o - 1}")
        if o + num_octets > limit:
            raise MalformedEncoding(f"truncated long-form length at offset {o - 1}")
        length_octets = buffer[o : o + num_octets]
        o += num_octets
        if length_octets[0] == 0:
            raise MalformedEncoding(f"non-minimal long-form length at offset {offset}")
        length = int.from_bytes(length_octets, "big")
        if length < 0x80:
            raise MalformedEncoding(f"long-form length {length} should use short form at offset {offset}")

    if o + length > limit:
        raise MalformedEncoding(
            f"declared length {length} at offset {offset} overruns its container (limit={limit})"
        )

    return DerNode(tag_offset=offset, content_offset=o, length=length, limit=limit)


def tag_of(buffer: bytes, node: DerNode) -> int:
    return buffer[node.tag_offset]


def root(buffer: bytes) -> DerNode:
    node = _read_element(buffer, 0, len(buffer))
    # Trailing bytes after the outermost element are never its siblings.
    return replace(node, limit=node.end)


def first_child_of(buffer: bytes, node: DerNode) -> DerNode:
    """Return the first element nested inside ``node``.

    A BIT STRING is descended into past its unused-bits octet so that
    wrapped structures (subjectPublicKey) can be walked in place.
    """
    tag = tag_of(buffer, node)
    if tag & TAG_CONSTRUCTED:
        start = node.content_offset
    elif tag == TAG_BIT_STRING:
        if node.length == 0 or buffer[node.content_offset] != 0:
            raise MalformedEncoding("BIT STRING with unused bits cannot hold a nested element")
        start = node.content_offset + 1
    else:
        raise NotConstructedType(f"tag 0x{tag:02x} at offset {node.tag_offset} is primitive")

    if start >= node.end:
        raise NoMoreSiblings(f"element at offset {node.tag_offset} has no children")
    return _read_element(buffer, start, node.end)


def next_sibling_of(buffer: bytes, node: DerNode) -> DerNode:
    if node.end >= node.limit:
        raise NoMoreSiblings(f"element at offset {node.tag_offset} is the last in its parent")
    return _read_element(buffer, node.end, node.limit)


def children(buffer: bytes, node: DerNode) -> Iterator[DerNode]:
    try:
        child = first_child_of(buffer, node)
    except NoMoreSiblings:
        return
    while True:
        yield child
        if child.end >= child.limit:
            return
        child = next_sibling_of(buffer, child)


def bytes_at(buffer: bytes, node: DerNode) -> bytes:
    return bytes(buffer[node.content_offset : node.end])


def all_bytes_at(buffer: bytes, node: DerNode) -> bytes:
    return bytes(buffer[node.tag_offset : node.end])


def bitstring_at(buffer: bytes, node: DerNode) -> bytes:
    tag = tag_of(buffer, node)
    if tag != TAG_BIT_STRING:
        raise MalformedEncoding(f"expected BIT STRING at offset {node.tag_offset}, got tag 0x{tag:02x}")
    if node.length == 0:
        raise MalformedEncoding(f"empty BIT STRING at offset {node.tag_offset}")
    if buffer[node.content_offset] != 0:
        raise MalformedEncoding(
            f"BIT STRING at offset {node.tag_offset} has {buffer[node.content_offset]} unused bits"
        )
    return bytes(buffer[node.content_offset + 1 : node.end])


def unsigned_integer_at(buffer: bytes, node: DerNode) -> bytes:
    """Return an INTEGER's magnitude without its DER sign octet."""
    tag = tag_of(buffer, node)
    if tag != TAG_INTEGER:
        raise MalformedEncoding(f"expected INTEGER at offset {node.tag_offset}, got tag 0x{tag:02x}")
    content = bytes_at(buffer, node)
    if not content:
        raise MalformedEncoding(f"empty INTEGER at offset {node.tag_offset}")
    if content[0] & 0x80:
        raise MalformedEncoding(f"negative INTEGER at offset {node.tag_offset}")
    if len(content) > 1 and content[0] == 0 and content[1] & 0x80:
        return content[1:]
    return content
