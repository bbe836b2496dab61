import pytest

from desc_bytes import code, descriptor, dstr, entity_list, f8, i4, item, ref_item, reference, tag, u4, ustr


@pytest.fixture
def every_variant_blob():
    """A descriptor holding one entity of each value kind, in a fixed order."""
    ref = reference(
        ref_item('prop', ustr('') + code('Lyr ') + code('Opct')),
        ref_item('Clss', ustr('Layer') + code('Lyr ')),
        ref_item('Enmr', ustr('') + code('Lyr ') + code('Ordn') + code('Trgt')),
        ref_item('rele', ustr('') + code('Lyr ') + i4(-2)),
    )
    nested = descriptor('', 'Clr ', item('Rd  ', 'doub', f8(255.0)))
    return descriptor(
        'Soft Round', 'brushPreset',
        item('ref', 'obj ', ref),
        item('Objc', 'Objc', nested),
        item('GlbO', 'GlbO', descriptor('Global', 'glob')),
        item('lst', 'VlLs', entity_list(item('n', 'long', i4(7)))),
        item('Opct', 'doub', f8(0.5)),
        item('Dmtr', 'UntF', tag('#Pxl') + f8(30.0)),
        item('Nm  ', 'TEXT', ustr('Brush')),
        item('Md  ', 'enum', code('BlnM') + dstr('linearDodge')),
        item('Cnt ', 'long', i4(-42)),
        item('flipX', 'bool', b'\x01'),
        item('Type', 'type', ustr('Color') + code('RGBC')),
        item('GlbC', 'GlbC', ustr('') + code('Lyr ')),
        item('File', 'alis', u4(3) + b'abc'),
        item('Smpl', 'tdta', u4(0)),
    )
