"""Text and JSON views of a decoded descriptor tree."""

from __future__ import annotations

from typing import Any, Dict, List

from descriptor_solver import (
    Class,
    Descriptor,
    Entity,
    Enum,
    EnumRef,
    Identifier,
    Index,
    NameRef,
    Offset,
    Opaque,
    Property,
    Reference,
    UnitFloat,
    ValueList,
)

INDENT_STR = "    "


def _pad(indent: int) -> str:
    return INDENT_STR * indent


def render_descriptor(descriptor: Descriptor, indent: int = 0) -> str:
    """
    Render a descriptor as indented text:

        Descriptor [2]: brushPreset
        {
            [TEXT] Nm  : Soft Round
            [UntF] Dmtr: [Unit: #Pxl, Value: 30.0]
        }

    Items appear in decode order, so the same tree always renders to the same text.
    """
    lines: List[str] = []
    _render_descriptor(descriptor, indent, lines)
    return "\n".join(lines)


def _render_descriptor(descriptor: Descriptor, indent: int, lines: List[str]) -> None:
    lines.append(f"{_pad(indent)}Descriptor [{len(descriptor.items)}]: {descriptor.class_id}")
    lines.append(f"{_pad(indent)}{{")
    _render_items(descriptor.items, indent, lines)
    lines.append(f"{_pad(indent)}}}")


def _render_items(items, indent: int, lines: List[str]) -> None:
    for item in items:
        _render_item(item, indent, lines)


def _render_item(item: Entity, indent: int, lines: List[str]) -> None:
    head = f"{_pad(indent + 1)}[{item.type}] {item.key}:"
    value = item.value
    if isinstance(value, (Reference, ValueList)):
        title = "Reference" if isinstance(value, Reference) else "List"
        lines.append(head)
        lines.append(f"{_pad(indent + 2)}{title} [{len(value.items)}]")
        lines.append(f"{_pad(indent + 2)}{{")
        _render_items(value.items, indent + 2, lines)
        lines.append(f"{_pad(indent + 2)}}}")
    elif isinstance(value, Descriptor):
        lines.append(head)
        _render_descriptor(value, indent + 2, lines)
    else:
        lines.append(f"{head} {format_value(value)}")


def format_value(value) -> str:
    """Single-line text for a leaf value."""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, UnitFloat):
        return f"[Unit: {value.unit}, Value: {value.value!r}]"
    if isinstance(value, Enum):
        return f"[Type: {value.type_id}, Enum: {value.enum}]"
    if isinstance(value, Class):
        return f"[Name: {value.name}, Class: {value.class_id}]"
    if isinstance(value, Property):
        return f"[Name: {value.name}, Class: {value.class_id}, Key: {value.key}]"
    if isinstance(value, EnumRef):
        return f"[Name: {value.name}, Class: {value.class_id}, Type: {value.type_id}, Enum: {value.enum}]"
    if isinstance(value, Offset):
        return f"[Name: {value.name}, Class: {value.class_id}, Value: {value.value}]"
    if isinstance(value, (Identifier, Index)):
        return f"[Value: {value.value}]"
    if isinstance(value, NameRef):
        return f"[Name: {value.name}, Class: {value.class_id}, Value: {value.value}]"
    if isinstance(value, Opaque):
        return f"<{len(value.data)} bytes>"
    raise TypeError(f"No text form for {type(value).__name__}")


# ==============================================================================
# JSON export
# ==============================================================================


def descriptor_to_dict(descriptor: Descriptor) -> Dict[str, Any]:
    return {
        'name': descriptor.name,
        'classID': descriptor.class_id,
        'items': [_entity_to_dict(item) for item in descriptor.items],
    }


def _entity_to_dict(item: Entity) -> Dict[str, Any]:
    return {'key': item.key, 'type': item.type, 'value': _value_to_json(item.value)}


def _value_to_json(value):
    if isinstance(value, Descriptor):
        return descriptor_to_dict(value)
    if isinstance(value, (Reference, ValueList)):
        return [_entity_to_dict(item) for item in value.items]
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Opaque):
        return {'size': len(value.data), 'hex': value.data.hex()}
    if isinstance(value, UnitFloat):
        return {'unit': value.unit, 'value': value.value}
    if isinstance(value, Enum):
        return {'enumType': value.type_id, 'value': value.enum}
    if isinstance(value, Class):
        return {'name': value.name, 'classID': value.class_id}
    if isinstance(value, Property):
        return {'name': value.name, 'classID': value.class_id, 'key': value.key}
    if isinstance(value, EnumRef):
        return {'name': value.name, 'classID': value.class_id, 'enumType': value.type_id, 'value': value.enum}
    if isinstance(value, (Offset, NameRef)):
        return {'name': value.name, 'classID': value.class_id, 'value': value.value}
    if isinstance(value, (Identifier, Index)):
        return {'value': value.value}
    raise TypeError(f"No JSON form for {type(value).__name__}")
