import pytest

from desc_bytes import code, descriptor, entity_list, i4, item, ref_item, reference, tag, u4, ustr
from descriptor_solver import (
    Class,
    Descriptor,
    DescriptorDecoder,
    Entity,
    Enum,
    EnumRef,
    Identifier,
    Index,
    NameRef,
    Offset,
    Opaque,
    Property,
    RecursionLimitExceeded,
    Reference,
    StreamTruncated,
    UnitFloat,
    UnknownTypeTag,
    UnsupportedDescriptorVersion,
    ValueList,
    decode_descriptor,
    decode_versioned_descriptor,
)
from stream_reader import StreamReader


def test_every_variant(every_variant_blob):
    desc = decode_descriptor(every_variant_blob)
    assert desc.name == 'Soft Round'
    assert desc.class_id == 'brushPreset'
    assert len(desc) == 14
    assert [e.type for e in desc] == [
        'obj ', 'Objc', 'GlbO', 'VlLs', 'doub', 'UntF', 'TEXT',
        'enum', 'long', 'bool', 'type', 'GlbC', 'alis', 'tdta',
    ]

    ref = desc.get('ref').value
    assert isinstance(ref, Reference)
    assert [e.value for e in ref] == [
        Property('', 'Lyr ', 'Opct'),
        Class('Layer', 'Lyr '),
        EnumRef('', 'Lyr ', 'Ordn', 'Trgt'),
        Offset('', 'Lyr ', -2),
    ]

    nested = desc.get('Objc').value
    assert nested == Descriptor('', 'Clr ', (Entity('Rd  ', 'doub', 255.0),))
    assert desc.get('GlbO').value == Descriptor('Global', 'glob', ())
    assert desc.get('lst').value == ValueList((Entity('n', 'long', 7),))
    assert desc.get('Opct').value == 0.5
    assert desc.get('Dmtr').value == UnitFloat('#Pxl', 30.0)
    assert desc.get('Nm  ').value == 'Brush'
    assert desc.get('Md  ').value == Enum('BlnM', 'linearDodge')
    assert desc.get('Cnt ').value == -42
    assert desc.get('flipX').value is True
    assert desc.get('Type').value == Class('Color', 'RGBC')
    assert desc.get('GlbC').value == Class('', 'Lyr ')
    assert desc.get('File').value == Opaque(b'abc')
    assert desc.get('Smpl').value == Opaque(b'')


def test_item_order_and_duplicate_keys():
    blob = descriptor(
        '', 'null',
        item('C', 'long', i4(3)),
        item('A', 'long', i4(1)),
        item('C', 'long', i4(4)),
    )
    desc = decode_descriptor(blob)
    assert desc.keys() == ('C', 'A', 'C')
    assert [e.value for e in desc] == [3, 1, 4]
    assert desc.get('C').value == 3
    assert desc.get('missing') is None


def test_trailing_bytes_are_left_unread():
    reader = StreamReader(descriptor('', 'null') + b'tail')
    decode_descriptor(reader)
    assert reader.read_bytes(4) == b'tail'


@pytest.mark.parametrize("raw, expected", [(b'\x01', True), (b'\x00', False), (b'\x02', False), (b'\xff', False)])
def test_bool_is_equality_to_one(raw, expected):
    desc = decode_descriptor(descriptor('', 'null', item('b', 'bool', raw)))
    assert desc.get('b').value is expected


def test_nested_lists():
    inner = entity_list(item('v', 'long', i4(42)))
    outer = entity_list(item('in', 'VlLs', inner))
    desc = decode_descriptor(descriptor('', 'null', item('out', 'VlLs', outer)))
    level1 = desc.get('out').value
    assert isinstance(level1, ValueList) and len(level1) == 1
    level2 = level1.items[0].value
    assert isinstance(level2, ValueList) and len(level2) == 1
    assert level2.items[0] == Entity('v', 'long', 42)


def test_keyless_lists():
    lst = u4(2) + tag('long') + i4(5) + tag('TEXT') + ustr('x')
    desc = decode_descriptor(descriptor('', 'null', item('l', 'VlLs', lst)), keyed_lists=False)
    assert desc.get('l').value == ValueList((Entity('', 'long', 5), Entity('', 'TEXT', 'x')))


def test_unknown_entity_tag():
    blob = descriptor('', 'null', item('ok', 'long', i4(1)), item('bad', 'zzzz', i4(0)))
    with pytest.raises(UnknownTypeTag) as excinfo:
        decode_descriptor(blob)
    err = excinfo.value
    assert err.tag == 'zzzz'
    assert err.key == 'bad'
    assert err.offset == blob.index(b'zzzz')


def test_unknown_tag_inside_nested_descriptor_aborts_everything():
    nested = descriptor('', 'Clr ', item('deep', '\x00\x01\x02\x03', b''))
    blob = descriptor('', 'null', item('n', 'Objc', nested))
    with pytest.raises(UnknownTypeTag) as excinfo:
        decode_descriptor(blob)
    assert excinfo.value.tag == '\x00\x01\x02\x03'
    assert excinfo.value.key == 'deep'


def test_unknown_reference_tag():
    ref = reference(ref_item('prop', ustr('') + code('Lyr ') + code('Opct')), ref_item('what', b''))
    with pytest.raises(UnknownTypeTag) as excinfo:
        decode_descriptor(descriptor('', 'null', item('r', 'obj ', ref)))
    assert excinfo.value.tag == 'what'
    assert excinfo.value.key == ''


def test_reference_identifier_index_name():
    ref = reference(
        ref_item('Idnt', i4(17)),
        ref_item('indx', i4(3)),
        ref_item('name', ustr('Layer 1') + code('Lyr ') + ustr('Background')),
        ref_item('Clss', ustr('') + code('Dcmn')),
    )
    desc = decode_descriptor(descriptor('', 'null', item('null', 'obj ', ref)))
    assert [e.value for e in desc.get('null').value] == [
        Identifier(17),
        Index(3),
        NameRef('Layer 1', 'Lyr ', 'Background'),
        Class('', 'Dcmn'),
    ]


def test_truncation_at_every_byte(every_variant_blob):
    for cut in range(len(every_variant_blob)):
        with pytest.raises(StreamTruncated):
            decode_descriptor(every_variant_blob[:cut])


def test_opaque_length_past_end():
    blob = descriptor('', 'null', item('a', 'alis', u4(1000) + b'short'))
    with pytest.raises(StreamTruncated):
        decode_descriptor(blob)


def _nested_lists(levels):
    body = entity_list(item('v', 'long', i4(1)))
    for _ in range(levels):
        body = entity_list(item('l', 'VlLs', body))
    return descriptor('', 'null', item('top', 'VlLs', body))


def test_depth_limit():
    # descriptor + 3 lists = depth 4
    blob = _nested_lists(2)
    assert decode_descriptor(blob, max_depth=4)
    with pytest.raises(RecursionLimitExceeded) as excinfo:
        decode_descriptor(blob, max_depth=3)
    assert excinfo.value.limit == 3
    assert excinfo.value.depth == 4


def test_depth_limit_counts_descriptors_and_references():
    ref = reference(ref_item('Clss', ustr('') + code('Lyr ')))
    inner = descriptor('', 'in  ', item('r', 'obj ', ref))
    blob = descriptor('', 'null', item('o', 'Objc', inner))
    assert decode_descriptor(blob, max_depth=3)
    with pytest.raises(RecursionLimitExceeded):
        decode_descriptor(blob, max_depth=2)


def test_default_depth_limit_stops_deep_input():
    with pytest.raises(RecursionLimitExceeded):
        decode_descriptor(_nested_lists(100))


def test_invalid_max_depth():
    with pytest.raises(ValueError):
        DescriptorDecoder(StreamReader(b''), max_depth=0)


def test_versioned_descriptor():
    desc = decode_versioned_descriptor(u4(16) + descriptor('', 'null', item('a', 'long', i4(1))))
    assert desc.get('a').value == 1
    with pytest.raises(UnsupportedDescriptorVersion) as excinfo:
        decode_versioned_descriptor(u4(15) + descriptor('', 'null'))
    assert excinfo.value.version == 15


def test_trace_dumps_context_on_error(capsys):
    blob = descriptor('', 'null', item('bad', 'zzzz', b''))
    with pytest.raises(UnknownTypeTag):
        decode_descriptor(blob, trace=True)
    out = capsys.readouterr().out
    assert "[Err] Descriptor Parse Failed" in out
    assert "Error Context" in out


def test_entity_rejects_mismatched_value():
    with pytest.raises(TypeError):
        Entity('k', 'long', True)
    with pytest.raises(TypeError):
        Entity('k', 'doub', 'x')
    with pytest.raises(TypeError):
        Entity('k', 'nope', 1)
    assert Entity('k', 'bool', False).value is False


def test_tree_is_immutable(every_variant_blob):
    desc = decode_descriptor(every_variant_blob)
    with pytest.raises(AttributeError):
        desc.name = 'other'
    assert isinstance(desc.items, tuple)


def test_descriptor_items_reject_reference_tags():
    with pytest.raises(TypeError):
        Descriptor('', 'null', (Entity('p', 'prop', Property('', 'Lyr ', 'Opct')),))
    with pytest.raises(TypeError):
        ValueList((Entity('', 'indx', Index(1)),))
    with pytest.raises(TypeError):
        Descriptor('', 'null', ('not an entity',))


def test_reference_items_reject_value_tags():
    with pytest.raises(TypeError):
        Reference((Entity('', 'long', 1),))
    ref = Reference([Entity('', 'Clss', Class('', 'Lyr '))])
    assert isinstance(ref.items, tuple)
