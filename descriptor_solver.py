"""
Action Descriptor decoding.

A descriptor is a named, classed, ordered list of key/value entities. Each
value is introduced by a 4-char OSType tag that selects how the following
bytes are read; lists, references and nested descriptors recurse.

    Descriptor  := UnicodeString(name) DynamicString(classID) EntityList
    EntityList  := u4(count) { DynamicString(key) OSType(type) <value> }
    Reference   := u4(count) { OSType(type) <reference item> }

The vocabulary is closed: a tag outside VALUE_TYPES / REFERENCE_TYPES aborts
the decode with UnknownTypeTag.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Tuple, Union

from stream_reader import DescriptorError, StreamReader, StreamTruncated

DEFAULT_MAX_DEPTH = 64
DESCRIPTOR_VERSION = 16

# ==============================================================================
# 1. 错误类型 (Decode Errors)
# ==============================================================================


class UnknownTypeTag(DescriptorError):
    def __init__(self, tag: str, key: str, offset: int):
        self.tag = tag
        self.key = key
        self.offset = offset
        super().__init__(f"Unknown OSType key [{tag}] in entity [{key}] at 0x{offset:08X}")


class RecursionLimitExceeded(DescriptorError):
    def __init__(self, depth: int, limit: int, offset: int):
        self.depth = depth
        self.limit = limit
        self.offset = offset
        super().__init__(f"Nesting depth {depth} exceeds limit {limit} at 0x{offset:08X}")


class UnsupportedDescriptorVersion(DescriptorError):
    def __init__(self, version: int):
        self.version = version
        super().__init__(f"Descriptor version {version} (expected {DESCRIPTOR_VERSION})")


# ==============================================================================
# 2. 数据模型 (Data Model)
# ==============================================================================


@dataclass(frozen=True)
class UnitFloat:
    unit: str
    value: float


@dataclass(frozen=True)
class Enum:
    type_id: str
    enum: str


@dataclass(frozen=True)
class Class:
    name: str
    class_id: str


@dataclass(frozen=True)
class Opaque:
    """Alias / raw-data payload, kept as bytes and never interpreted."""

    data: bytes

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Property:
    name: str
    class_id: str
    key: str


@dataclass(frozen=True)
class EnumRef:
    name: str
    class_id: str
    type_id: str
    enum: str


@dataclass(frozen=True)
class Offset:
    name: str
    class_id: str
    value: int


@dataclass(frozen=True)
class Identifier:
    value: int


@dataclass(frozen=True)
class Index:
    value: int


@dataclass(frozen=True)
class NameRef:
    name: str
    class_id: str
    value: str


@dataclass(frozen=True)
class Reference:
    items: Tuple["Entity", ...] = ()

    def __post_init__(self) -> None:
        _check_items(self, REFERENCE_VARIANTS)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator["Entity"]:
        return iter(self.items)


@dataclass(frozen=True)
class ValueList:
    items: Tuple["Entity", ...] = ()

    def __post_init__(self) -> None:
        _check_items(self, VALUE_VARIANTS)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator["Entity"]:
        return iter(self.items)


@dataclass(frozen=True)
class Descriptor:
    name: str
    class_id: str
    items: Tuple["Entity", ...] = ()

    def __post_init__(self) -> None:
        _check_items(self, VALUE_VARIANTS)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator["Entity"]:
        return iter(self.items)

    def keys(self) -> Tuple[str, ...]:
        return tuple(item.key for item in self.items)

    def get(self, key: str, default=None):
        for item in self.items:
            if item.key == key:
                return item
        return default


Value = Union[
    Reference, Descriptor, ValueList, float, UnitFloat, str, Enum, int, bool,
    Class, Opaque, Property, EnumRef, Offset, Identifier, Index, NameRef,
]

# Tag -> Python type its value must carry
VALUE_VARIANTS = {
    'obj ': Reference,
    'Objc': Descriptor,
    'GlbO': Descriptor,
    'VlLs': ValueList,
    'doub': float,
    'UntF': UnitFloat,
    'TEXT': str,
    'enum': Enum,
    'long': int,
    'bool': bool,
    'type': Class,
    'GlbC': Class,
    'alis': Opaque,
    'tdta': Opaque,
}

REFERENCE_VARIANTS = {
    'prop': Property,
    'Clss': Class,
    'Enmr': EnumRef,
    'rele': Offset,
    'Idnt': Identifier,
    'indx': Index,
    'name': NameRef,
}

VARIANTS = {**VALUE_VARIANTS, **REFERENCE_VARIANTS}


def _check_items(container, allowed) -> None:
    """Descriptors and lists hold value tags only; references hold reference item tags only."""
    items = tuple(container.items)
    for item in items:
        if not isinstance(item, Entity) or item.type not in allowed:
            raise TypeError(f"{type(container).__name__} cannot hold {item!r}")
    object.__setattr__(container, 'items', items)


@dataclass(frozen=True)
class Entity:
    key: str
    type: str
    value: Value

    def __post_init__(self) -> None:
        expected = VARIANTS.get(self.type)
        if expected is None:
            raise TypeError(f"Unknown OSType [{self.type}] for entity [{self.key}]")
        value = self.value
        # bool is an int subclass; 'long' must not accept it
        if expected is int:
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            ok = isinstance(value, expected)
        if not ok:
            raise TypeError(
                f"Entity [{self.key}] of type [{self.type}] needs {expected.__name__}, "
                f"got {type(value).__name__}"
            )


# ==============================================================================
# 3. 解码器 (DescriptorDecoder)
# ==============================================================================


class DescriptorDecoder:
    # [TABLE 1] Entity value decoders, keyed by OSType
    VALUE_TYPES = {
        'obj ': '_parse_reference_value',
        'Objc': '_parse_descriptor_value',
        'GlbO': '_parse_descriptor_value',
        'VlLs': '_parse_list_value',
        'doub': '_parse_double',
        'UntF': '_parse_unit_float',
        'TEXT': '_parse_text',
        'enum': '_parse_enum',
        'long': '_parse_long',
        'bool': '_parse_bool',
        'type': '_parse_class',
        'GlbC': '_parse_class',
        'alis': '_parse_opaque',
        'tdta': '_parse_opaque',
    }

    # [TABLE 2] Reference item decoders, keyed by OSType
    REFERENCE_TYPES = {
        'prop': '_parse_property',
        'Clss': '_parse_class',
        'Enmr': '_parse_enum_ref',
        'rele': '_parse_offset',
        'Idnt': '_parse_identifier',
        'indx': '_parse_index',
        'name': '_parse_name_ref',
    }

    def __init__(self, reader: StreamReader, max_depth: int = DEFAULT_MAX_DEPTH, keyed_lists: bool = True):
        if max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")
        self.reader = reader
        self.max_depth = max_depth
        # Photoshop writes VlLs items as bare `type value` pairs; keyed_lists=False reads that layout
        self.keyed_lists = keyed_lists
        self.depth = 0

    def decode(self) -> Descriptor:
        """Decode one descriptor; on failure dump context (trace) and re-raise."""
        try:
            return self.parse_descriptor()
        except DescriptorError as e:
            self.reader.message(f"[Err] Descriptor Parse Failed: {e}")
            pos = self.reader.tell()
            self.reader.dump_section_smart(pos - 64, pos + 64, "Error Context")
            raise

    @contextmanager
    def _nested(self, label: str):
        if self.depth >= self.max_depth:
            raise RecursionLimitExceeded(self.depth + 1, self.max_depth, self.reader.tell())
        self.depth += 1
        self.reader.indent()
        self.reader.message(f"--- {label} Start ---")
        try:
            yield
        finally:
            self.reader.dedent()
            self.depth -= 1

    def parse_descriptor(self, label: str = "Descriptor") -> Descriptor:
        with self._nested(label):
            name = self.reader.read_unicode_string("Name")
            class_id = self.reader.read_dynamic_string("ClassID")
            items = self._parse_entities(label)
        self.reader.message(f"--- {label} End ---")
        return Descriptor(name, class_id, items)

    def parse_entity_list(self, label: str = "List") -> ValueList:
        with self._nested(label):
            items = self._parse_entities(label, keyed=self.keyed_lists)
        return ValueList(items)

    def _parse_entities(self, label: str, keyed: bool = True) -> Tuple[Entity, ...]:
        count = self.reader.read_u4("NumItems")
        items = []
        for i in range(count):
            key = self.reader.read_dynamic_string(f"Item{i}.Key") if keyed else ""
            type_code = self.reader.read_ostype(f"Item{i}.Type")
            method = self.VALUE_TYPES.get(type_code)
            if method is None:
                raise UnknownTypeTag(type_code, key, self.reader.tell() - 4)
            value = getattr(self, method)(f"{label}.{key}")
            items.append(Entity(key, type_code, value))
        return tuple(items)

    def parse_reference(self, label: str = "Reference") -> Reference:
        with self._nested(label):
            count = self.reader.read_u4("NumItems")
            items = []
            for i in range(count):
                type_code = self.reader.read_ostype(f"Ref{i}.Type")
                method = self.REFERENCE_TYPES.get(type_code)
                if method is None:
                    raise UnknownTypeTag(type_code, "", self.reader.tell() - 4)
                value = getattr(self, method)(f"{label}.Ref{i}")
                items.append(Entity("", type_code, value))
        return Reference(tuple(items))

    # --- Entity values ---

    def _parse_reference_value(self, label):
        return self.parse_reference(f"{label}.Ref")

    def _parse_descriptor_value(self, label):
        return self.parse_descriptor(f"{label}.Obj")

    def _parse_list_value(self, label):
        return self.parse_entity_list(f"{label}.List")

    def _parse_double(self, label):
        return self.reader.read_double(f"{label}.Val(Double)")

    def _parse_unit_float(self, label):
        unit = self.reader.read_ostype(f"{label}.Unit")
        return UnitFloat(unit, self.reader.read_double(f"{label}.Val(Double)"))

    def _parse_text(self, label):
        return self.reader.read_unicode_string(f"{label}.Val(Text)")

    def _parse_enum(self, label):
        type_id = self.reader.read_dynamic_string(f"{label}.EnumTy")
        return Enum(type_id, self.reader.read_dynamic_string(f"{label}.EnumVal"))

    def _parse_long(self, label):
        return self.reader.read_i4(f"{label}.Val(Long)")

    def _parse_bool(self, label):
        return self.reader.read_u1(f"{label}.Val(Bool)") == 1

    def _parse_class(self, label):
        name = self.reader.read_unicode_string(f"{label}.Name")
        return Class(name, self.reader.read_dynamic_string(f"{label}.ClassID"))

    def _parse_opaque(self, label):
        length = self.reader.read_u4(f"{label}.Len")
        return Opaque(self.reader.read_bytes(length, f"{label}.Data"))

    # --- Reference items ---

    def _parse_property(self, label):
        name = self.reader.read_unicode_string(f"{label}.Name")
        class_id = self.reader.read_dynamic_string(f"{label}.ClassID")
        return Property(name, class_id, self.reader.read_dynamic_string(f"{label}.Key"))

    def _parse_enum_ref(self, label):
        name = self.reader.read_unicode_string(f"{label}.Name")
        class_id = self.reader.read_dynamic_string(f"{label}.ClassID")
        type_id = self.reader.read_dynamic_string(f"{label}.EnumTy")
        return EnumRef(name, class_id, type_id, self.reader.read_dynamic_string(f"{label}.EnumVal"))

    def _parse_offset(self, label):
        name = self.reader.read_unicode_string(f"{label}.Name")
        class_id = self.reader.read_dynamic_string(f"{label}.ClassID")
        return Offset(name, class_id, self.reader.read_i4(f"{label}.Val(Offset)"))

    def _parse_identifier(self, label):
        return Identifier(self.reader.read_i4(f"{label}.Val(Idnt)"))

    def _parse_index(self, label):
        return Index(self.reader.read_i4(f"{label}.Val(Index)"))

    def _parse_name_ref(self, label):
        name = self.reader.read_unicode_string(f"{label}.Name")
        class_id = self.reader.read_dynamic_string(f"{label}.ClassID")
        return NameRef(name, class_id, self.reader.read_unicode_string(f"{label}.Val(Name)"))


# ==============================================================================
# 4. 入口 (Entry Points)
# ==============================================================================


def _as_reader(data, trace):
    if isinstance(data, StreamReader):
        return data
    return StreamReader(data, trace=trace)


def decode_descriptor(data, *, max_depth: int = DEFAULT_MAX_DEPTH, trace: bool = False,
                      keyed_lists: bool = True) -> Descriptor:
    """Decode a bare descriptor from bytes or an existing StreamReader."""
    reader = _as_reader(data, trace)
    return DescriptorDecoder(reader, max_depth=max_depth, keyed_lists=keyed_lists).decode()


def decode_versioned_descriptor(data, *, max_depth: int = DEFAULT_MAX_DEPTH, trace: bool = False,
                                keyed_lists: bool = True) -> Descriptor:
    """Decode `u4 version (16)` followed by a descriptor, as found in ABR desc blocks."""
    reader = _as_reader(data, trace)
    version = reader.read_u4("DescVersion")
    if version != DESCRIPTOR_VERSION:
        raise UnsupportedDescriptorVersion(version)
    return DescriptorDecoder(reader, max_depth=max_depth, keyed_lists=keyed_lists).decode()


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "DESCRIPTOR_VERSION",
    "DescriptorError",
    "StreamTruncated",
    "UnknownTypeTag",
    "RecursionLimitExceeded",
    "UnsupportedDescriptorVersion",
    "Descriptor",
    "Entity",
    "Reference",
    "ValueList",
    "UnitFloat",
    "Enum",
    "Class",
    "Opaque",
    "Property",
    "EnumRef",
    "Offset",
    "Identifier",
    "Index",
    "NameRef",
    "VALUE_VARIANTS",
    "REFERENCE_VARIANTS",
    "VARIANTS",
    "DescriptorDecoder",
    "decode_descriptor",
    "decode_versioned_descriptor",
]
