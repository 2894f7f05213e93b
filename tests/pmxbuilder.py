"""Assemble synthetic PMX buffers with struct for the tests."""
import struct

SECTIONS = ('vertex', 'face', 'texture', 'material', 'bone', 'morph',
            'display_frame', 'rigid_body', 'joint', 'soft_body')

_VERTEX_FORMATS = {1: '<B', 2: '<H', 4: '<i'}
_SIGNED_FORMATS = {1: '<b', 2: '<h', 4: '<i'}


def vec(*values):
    return struct.pack('<%df' % len(values), *values)


def i32(value):
    return struct.pack('<i', value)


def u8(value):
    return struct.pack('<B', value)


class PmxBuilder:
    """
    Collects raw section records and writes a PMX file.
    Record helpers return bytes, add_* methods append them to a section.
    """
    def __init__(self, version=2.0, encoding=1, additional_uvs=0,
                 vertex_index_size=1, texture_index_size=1, material_index_size=1,
                 bone_index_size=1, morph_index_size=1, rigid_index_size=1,
                 globals_count=8):
        self.version = version
        self.encoding = encoding
        self.additional_uvs = additional_uvs
        self.vertex_index_size = vertex_index_size
        self.texture_index_size = texture_index_size
        self.material_index_size = material_index_size
        self.bone_index_size = bone_index_size
        self.morph_index_size = morph_index_size
        self.rigid_index_size = rigid_index_size
        self.globals_count = globals_count

        self.name = 'model'
        self.name_e = 'model_e'
        self.comment = ''
        self.comment_e = ''

        self.records = {section: [] for section in SECTIONS}
        self.counts = {} # overrides of the written record counts
        self.include_soft_bodies = version > 2.05 # PMX 2.1 files always carry the section
        self.trailer = b''
        self.offsets = {}

    # primitives
    def text(self, s):
        data = s.encode('utf-16-le' if self.encoding == 0 else 'utf-8')
        return i32(len(data)) + data

    def vertex_index(self, i):
        return struct.pack(_VERTEX_FORMATS[self.vertex_index_size], i)

    def index(self, kind, i):
        size = getattr(self, kind + '_index_size')
        return struct.pack(_SIGNED_FORMATS[size], i)

    def header_bytes(self):
        globals_ = [self.encoding, self.additional_uvs,
                    self.vertex_index_size, self.texture_index_size, self.material_index_size,
                    self.bone_index_size, self.morph_index_size, self.rigid_index_size]
        globals_ += [0] * (self.globals_count - 8)
        return (b'PMX ' + struct.pack('<f', self.version) + u8(self.globals_count) + bytes(globals_[:self.globals_count])
                + self.text(self.name) + self.text(self.name_e)
                + self.text(self.comment) + self.text(self.comment_e))

    # vertex weights
    def bdef1(self, bone=0):
        return u8(0) + self.index('bone', bone)

    def bdef2(self, b1=0, b2=0, w=0.5):
        return u8(1) + self.index('bone', b1) + self.index('bone', b2) + vec(w)

    def bdef4(self, bones=(0, 0, 0, 0), weights=(0.25, 0.25, 0.25, 0.25)):
        return u8(2) + b''.join(self.index('bone', b) for b in bones) + vec(*weights)

    def sdef(self, b1=0, b2=0, w=0.5, c=(0, 0, 0), r0=(0, 0, 0), r1=(0, 0, 0)):
        return u8(3) + self.index('bone', b1) + self.index('bone', b2) + vec(w) + vec(*c) + vec(*r0) + vec(*r1)

    def qdef(self, bones=(0, 0, 0, 0), weights=(0.25, 0.25, 0.25, 0.25)):
        return u8(4) + b''.join(self.index('bone', b) for b in bones) + vec(*weights)

    def add_vertex(self, weight=None, co=(0.0, 0.0, 0.0), normal=(0.0, 1.0, 0.0), uv=(0.0, 0.0), additional_uvs=None, edge_scale=1.0):
        if weight is None:
            weight = self.bdef1(0)
        if additional_uvs is None:
            additional_uvs = [(0.0, 0.0, 0.0, 0.0)] * self.additional_uvs
        data = vec(*co) + vec(*normal) + vec(*uv) + b''.join(vec(*u) for u in additional_uvs) + weight + vec(edge_scale)
        self.records['vertex'].append(data)

    def add_face(self, a, b, c):
        self.records['face'].append(self.vertex_index(a) + self.vertex_index(b) + self.vertex_index(c))

    def add_texture(self, path):
        self.records['texture'].append(self.text(path))

    def add_material(self, name='mat', name_e='', flags=0x1F, texture=-1, sphere=-1, sphere_mode=0,
                     shared_toon=0, toon_texture=None, toon_flag=None, comment='', vertex_count=0):
        if toon_flag is None:
            toon_flag = 0 if toon_texture is not None else 1
        toon = u8(toon_flag) + (self.index('texture', toon_texture) if toon_flag == 0 else u8(shared_toon))
        data = (self.text(name) + self.text(name_e)
                + vec(1.0, 1.0, 1.0, 1.0) + vec(0.5, 0.5, 0.5) + vec(5.0) + vec(0.2, 0.2, 0.2)
                + u8(flags) + vec(0.0, 0.0, 0.0, 1.0) + vec(1.0)
                + self.index('texture', texture) + self.index('texture', sphere) + u8(sphere_mode)
                + toon + self.text(comment) + i32(vertex_count))
        self.records['material'].append(data)

    def add_bone(self, name='bone', name_e='', location=(0.0, 0.0, 0.0), parent=-1, transform_order=0,
                 flags=0x001E, tail_bone=None, tail=(0.0, 1.0, 0.0),
                 additional=None, fixed_axis=None, local_axes=None, external_key=None,
                 ik=None):
        """additional is (rotate, move, bone_index, influence); ik is (target, loop, limit, [(bone, limits or None)])."""
        body = b''
        if tail_bone is not None:
            flags |= 0x0001
            body += self.index('bone', tail_bone)
        else:
            body += vec(*tail)
        if additional is not None:
            rotate, move, index, influence = additional
            flags |= (0x0100 if rotate else 0) | (0x0200 if move else 0)
            body += self.index('bone', index) + vec(influence)
        if fixed_axis is not None:
            flags |= 0x0400
            body += vec(*fixed_axis)
        if local_axes is not None:
            flags |= 0x0800
            body += vec(*local_axes[0]) + vec(*local_axes[1])
        if external_key is not None:
            flags |= 0x2000
            body += i32(external_key)
        if ik is not None:
            flags |= 0x0020
            target, loop, limit, links = ik
            body += self.index('bone', target) + i32(loop) + vec(limit) + i32(len(links))
            for bone, limits in links:
                body += self.index('bone', bone)
                if limits is None:
                    body += u8(0)
                else:
                    body += u8(1) + vec(*limits[0]) + vec(*limits[1])
        data = (self.text(name) + self.text(name_e) + vec(*location) + self.index('bone', parent)
                + i32(transform_order) + struct.pack('<H', flags) + body)
        self.records['bone'].append(data)

    # morph offsets
    def group_offset(self, morph, factor=1.0):
        return self.index('morph', morph) + vec(factor)

    def vertex_offset(self, vertex, offset=(0.0, 0.1, 0.0)):
        return self.vertex_index(vertex) + vec(*offset)

    def bone_offset(self, bone, location=(0.0, 0.0, 0.0), rotation=(0.0, 0.0, 0.0, 1.0)):
        return self.index('bone', bone) + vec(*location) + vec(*rotation)

    def uv_offset(self, vertex, offset=(0.1, 0.0, 0.0, 0.0)):
        return self.vertex_index(vertex) + vec(*offset)

    def material_offset(self, material, op=0):
        return self.index('material', material) + u8(op) + vec(*([0.5] * 28))

    def impulse_offset(self, rigid, is_local=1, velocity=(0.0, 1.0, 0.0), torque=(0.0, 0.0, 0.0)):
        return self.index('rigid', rigid) + u8(is_local) + vec(*velocity) + vec(*torque)

    def add_morph(self, name='morph', kind=1, offsets=(), category=4, name_e=''):
        data = self.text(name) + self.text(name_e) + u8(category) + u8(kind) + i32(len(offsets)) + b''.join(offsets)
        self.records['morph'].append(data)

    def add_display(self, name='Root', items=(), special=0, name_e=''):
        """items are (type, index) pairs, type 0 is a bone and 1 a morph."""
        body = b''
        for disp_type, index in items:
            body += u8(disp_type)
            body += self.index('morph' if disp_type == 1 else 'bone', index)
        data = self.text(name) + self.text(name_e) + u8(special) + i32(len(items)) + body
        self.records['display_frame'].append(data)

    def add_rigid(self, name='rigid', bone=-1, group=0, mask=0xFFFF, shape=0, size=(1.0, 2.0, 3.0), mode=0, name_e=''):
        data = (self.text(name) + self.text(name_e) + self.index('bone', bone)
                + struct.pack('<bH', group, mask) + u8(shape) + vec(*size)
                + vec(0.0, 0.0, 0.0) + vec(0.0, 0.0, 0.0)
                + vec(1.0, 0.5, 0.5, 0.0, 0.5) + u8(mode))
        self.records['rigid_body'].append(data)

    def add_joint(self, name='joint', a=-1, b=-1, kind=0, name_e=''):
        data = (self.text(name) + self.text(name_e) + u8(kind)
                + self.index('rigid', a) + self.index('rigid', b)
                + vec(*([0.0] * 24)))
        self.records['joint'].append(data)

    def add_soft_body(self, name='soft', material=-1, shape=0, flags=0x03, aero=0, anchors=(), pins=(), name_e=''):
        """anchors are (rigid, vertex, near_mode) triples."""
        self.include_soft_bodies = True
        data = (self.text(name) + self.text(name_e) + u8(shape) + self.index('material', material)
                + u8(1) + struct.pack('<H', 0xFFFF) + u8(flags)
                + i32(2) + i32(0) + vec(1.0) + vec(0.05) + i32(aero)
                + vec(*([0.5] * 12)) + vec(*([0.25] * 6))
                + struct.pack('<4i', 1, 2, 3, 4) + vec(1.0, 1.0, 1.0)
                + i32(len(anchors))
                + b''.join(self.index('rigid', r) + self.vertex_index(v) + u8(n) for r, v, n in anchors)
                + i32(len(pins)) + b''.join(self.vertex_index(v) for v in pins))
        self.records['soft_body'].append(data)

    def build(self):
        buf = bytearray(self.header_bytes())
        for section in SECTIONS:
            if section == 'soft_body' and not self.include_soft_bodies:
                continue
            records = self.records[section]
            count = len(records) * 3 if section == 'face' else len(records)
            self.offsets[section] = len(buf)
            buf += i32(self.counts.get(section, count))
            for data in records:
                buf += data
        buf += self.trailer
        return bytes(buf)


def minimal(**kwargs):
    """One vertex bound to one bone, one face using it three times."""
    b = PmxBuilder(**kwargs)
    b.add_vertex(b.bdef1(0))
    b.add_face(0, 0, 0)
    b.add_bone('root')
    return b


def full(**kwargs):
    """A model using every 2.0 section and most variants."""
    b = PmxBuilder(**kwargs)
    b.name = '初音ミク'
    b.comment = 'コメント'
    b.add_vertex(b.bdef1(0), co=(0.0, 0.0, 0.0))
    b.add_vertex(b.bdef2(0, 1, 0.25), co=(1.0, 0.0, 0.0))
    b.add_vertex(b.bdef4((0, 1, 2, -1), (0.5, 0.25, 0.25, 0.0)), co=(0.0, 1.0, 0.0))
    b.add_vertex(b.sdef(1, 2, 0.75, (0.0, 1.0, 0.0), (0.0, 0.5, 0.0), (0.0, 1.5, 0.0)), co=(1.0, 1.0, 0.0))
    b.add_face(0, 1, 2)
    b.add_face(1, 3, 2)
    b.add_texture('tex/body.png')
    b.add_texture('tex/sphere.spa')
    b.add_material('体', 'body', texture=0, sphere=1, sphere_mode=1, shared_toon=2, vertex_count=3)
    b.add_material('顔', 'face', toon_texture=0, vertex_count=3)
    b.add_bone('センター', 'center', flags=0x001E | 0x0008)
    b.add_bone('上半身', 'upper body', parent=0, tail_bone=2, additional=(True, False, 0, 0.5))
    b.add_bone('首', 'neck', parent=1, fixed_axis=(0.0, 1.0, 0.0), local_axes=((1.0, 0.0, 0.0), (0.0, 0.0, 1.0)), external_key=3)
    b.add_bone('IK', 'ik', parent=0, ik=(2, 40, 0.5, [(1, ((-1.0, 0.0, 0.0), (0.0, 0.0, 0.0))), (0, None)]))
    b.add_morph('あ', kind=1, category=3, offsets=[b.vertex_offset(0), b.vertex_offset(3)])
    b.add_morph('bone', kind=2, offsets=[b.bone_offset(1)])
    b.add_morph('uv', kind=3, offsets=[b.uv_offset(2)])
    b.add_morph('mat', kind=8, offsets=[b.material_offset(-1, op=1), b.material_offset(1)])
    b.add_morph('group', kind=0, offsets=[b.group_offset(0, 0.5), b.group_offset(1)])
    b.add_display('Root', [(0, 0)], special=1)
    b.add_display('表情', [(1, 0), (1, 4)], special=1)
    b.add_display('体', [(0, 1), (0, 2)])
    b.add_rigid('head', bone=2, shape=0)
    b.add_rigid('body', bone=1, shape=1, mode=1)
    b.add_rigid('arm', bone=-1, shape=2, mode=2)
    b.add_joint('neck', 0, 1)
    b.add_joint('free', -1, 2)
    return b
