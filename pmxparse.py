# -*- coding: utf-8 -*-
# Copyright 2014 MMD Tools authors
# This file is part of MMD Tools.

# Modified by Kafuji Sato
# Changes:
# - Parse-only decoder over an in-memory buffer. No file objects, no writer.
# - Every read is bounds-checked and text is decoded strictly.
# - References to other elements stay as indices and are validated after all sections are loaded.
# - Tagged variants for vertex weights, toon textures, bone tails, morph kinds and rigid body shapes.
# - PMX 2.1 features (QDEF weights, Flip/Impulse morphs, extra joint types, soft bodies).
from __future__ import annotations

import struct
from typing import (Callable, Dict, Generic, Iterable, Iterator, List,
                    Optional, Tuple, TypeVar, Union, overload)

NONE_INDEX = -1 # Sentinel for "no reference" in texture, material, bone, morph and rigid body indices


##################################################################################
# Basic container classes
T = TypeVar('T')
class NamedElements(list[T], Generic[T]):
    """
    A list that also allows accessing elements by name in O(1).
    PMX does not require names to be unique or non-empty, so the first element
    with a given name wins and unnamed elements are reachable by index only.
    """
    __slots__ = ("_name_cache",)

    def __init__(self, items: Iterable[T] = ()):
        super().__init__(items)
        self._name_cache: Dict[str, int] = {}
        self._rebuild_cache()

    def _rebuild_cache(self):
        """Rebuild the name-to-index cache."""
        self._name_cache.clear()
        for idx, item in enumerate(self):
            if item.name and item.name not in self._name_cache:
                self._name_cache[item.name] = idx

    def __repr__(self):
        names = [str(item.name) for item in self]
        return f"<NamedElements(names={names})>"

    @overload
    def __getitem__(self, idx: int) -> T: ...

    @overload
    def __getitem__(self, idx: slice) -> NamedElements[T]: ...

    @overload
    def __getitem__(self, idx: str) -> T: ...

    def __getitem__(self, idx: Union[int, slice, str]) -> Union[T, NamedElements[T]]:
        if isinstance(idx, str):
            entry = self._name_cache.get(idx)
            if entry is None:
                raise KeyError(f"Name '{idx}' not found.")
            return super().__getitem__(entry)

        result = super().__getitem__(idx)
        if isinstance(idx, slice):
            return NamedElements(result)
        return result

    def __setitem__(self, idx: Union[int, slice], value: Union[T, Iterable[T]]):
        super().__setitem__(idx, value)
        self._rebuild_cache()

    def append(self, item: T):
        super().append(item)
        if item.name and item.name not in self._name_cache:
            self._name_cache[item.name] = len(self) - 1

    def insert(self, idx: int, item: T):
        super().insert(idx, item)
        self._rebuild_cache()

    def extend(self, items: Iterable[T]):
        super().extend(items)
        self._rebuild_cache()

    def pop(self, idx: int = -1) -> T:
        item = super().pop(idx)
        self._rebuild_cache()
        return item

    def remove(self, item: T):
        super().remove(item)
        self._rebuild_cache()

    def __delitem__(self, idx: Union[int, slice]):
        super().__delitem__(idx)
        self._rebuild_cache()

    def clear(self):
        super().clear()
        self._rebuild_cache()

    def __contains__(self, key: Union[str, T]) -> bool:
        if isinstance(key, str):
            return key in self._name_cache
        return super().__contains__(key)

    def get(self, name: str, default: Optional[T] = None) -> Optional[T]:
        """Get an element by its name in O(1) with a default value."""
        entry = self._name_cache.get(name)
        return super().__getitem__(entry) if entry is not None else default

    def name_by_index(self, index: int) -> Optional[str]:
        """Get the name of an element by its index in O(1). Returns None if not found."""
        if 0 <= index < len(self):
            return super().__getitem__(index).name
        return None

    def index(self, key: Union[str, T]) -> int:
        """Get the index of an element by its name in O(1). Returns -1 if not found. Key can be a name string or an element."""
        if isinstance(key, str):
            return self._name_cache.get(key, -1)
        for i, item in enumerate(self):
            if item is key:
                return i
        return -1

    def find_duplicate_names(self) -> List[str]:
        """Names used by more than one element, in order of first appearance."""
        seen = set()
        duplicates: List[str] = []
        for item in self:
            if item.name in seen and item.name not in duplicates:
                duplicates.append(item.name)
            seen.add(item.name)
        return [name for name in duplicates if name]

    def find_unnamed(self) -> List[int]:
        """Indices of elements with an empty name."""
        return [i for i, item in enumerate(self) if not item.name]


##################################################################################
# Errors
class PmxError(Exception):
    """Base class of every error raised while parsing a PMX buffer."""
    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.offset = offset

class TruncatedInputError(PmxError):
    def __init__(self, offset: int, needed: int):
        super().__init__(f'unexpected end of data at offset {offset} ({needed} more bytes required)', offset)
        self.needed = needed

class MalformedHeaderError(PmxError):
    pass

class UnsupportedVersionError(PmxError):
    def __init__(self, found: float, offset: Optional[int] = None):
        super().__init__('unsupported PMX version: %.2f' % found, offset)
        self.found = found

class InvalidCountError(PmxError):
    """
    Negative or structurally impossible count (e.g. face indices not a multiple of 3).
    Counts too large for the remaining data are reported as TruncatedInputError instead,
    so a cut file always fails as truncated.
    """
    def __init__(self, section: str, value: int, offset: Optional[int] = None, reason: str = 'invalid count'):
        super().__init__(f'{reason} for {section}: {value}', offset)
        self.section = section
        self.value = value

class UnknownVariantError(PmxError):
    def __init__(self, context: str, tag: int, offset: Optional[int] = None):
        super().__init__(f'unknown {context}: {tag} (offset {offset})', offset)
        self.context = context
        self.tag = tag

class InvalidTextError(PmxError):
    def __init__(self, offset: int, reason: str):
        super().__init__(f'invalid text at offset {offset}: {reason}', offset)
        self.reason = reason

class DanglingReferenceError(PmxError):
    def __init__(self, section: str, record_index: int, target_section: str, value: int):
        super().__init__(f'{section}[{record_index}] refers to {target_section} {value}, which does not exist')
        self.section = section
        self.record_index = record_index
        self.target_section = target_section
        self.value = value

class SelfReferenceError(DanglingReferenceError):
    def __init__(self, section: str, record_index: int):
        PmxError.__init__(self, f'{section}[{record_index}] refers to itself')
        self.section = section
        self.record_index = record_index
        self.target_section = section
        self.value = record_index

class ValidationError(PmxError):
    """Raised instead of a single DanglingReferenceError when every violation is collected."""
    def __init__(self, violations: List[DanglingReferenceError]):
        super().__init__(f'{len(violations)} dangling references, first: {violations[0]}')
        self.violations = violations


class Section:
    """Names used in errors to identify sections and reference targets."""
    HEADER = 'header'
    VERTEX = 'vertex'
    FACE = 'face'
    TEXTURE = 'texture'
    MATERIAL = 'material'
    BONE = 'bone'
    MORPH = 'morph'
    DISPLAY = 'display_frame'
    RIGID = 'rigid_body'
    JOINT = 'joint'
    SOFT_BODY = 'soft_body'
    TEXT = 'text'
    ADDITIONAL_UV = 'additional_uv'
    INTERNAL_TOON = 'internal_toon'


##################################################################################
class ReadStream:
    """Bounds-checked little-endian reader over a complete PMX buffer held in memory."""
    _INT = struct.Struct('<i')
    _SHORT = struct.Struct('<h')
    _USHORT = struct.Struct('<H')
    _FLOAT = struct.Struct('<f')
    _BYTE = struct.Struct('<B')
    _SBYTE = struct.Struct('<b')
    _VECTORS = {n: struct.Struct('<' + 'f' * n) for n in (2, 3, 4)}

    _SIGNED_INDEX = {1: '<b', 2: '<h', 4: '<i'}
    _VERTEX_INDEX = {1: '<B', 2: '<H', 4: '<i'} # 1 and 2 byte vertex indices are unsigned

    def __init__(self, data: bytes, pmx_header: Optional[Header] = None):
        self.__data = bytes(data) # own a copy, the caller may reuse its buffer
        self.__pos = 0
        self.__header: Optional[Header] = None

        def not_ready():
            raise RuntimeError('index sizes are unknown until the header is loaded')
        self.__vertexIndex = self.__boneIndex = self.__textureIndex = not_ready
        self.__materialIndex = self.__morphIndex = self.__rigidIndex = not_ready

        if pmx_header is not None:
            self.setHeader(pmx_header)

    def header(self) -> Header:
        if self.__header is None:
            raise RuntimeError('header is not loaded yet')
        return self.__header

    def setHeader(self, pmx_header: Header):
        self.__header = pmx_header
        self.__vertexIndex = self.__indexReader(pmx_header.vertex_index_size, self._VERTEX_INDEX)
        self.__textureIndex = self.__indexReader(pmx_header.texture_index_size, self._SIGNED_INDEX)
        self.__materialIndex = self.__indexReader(pmx_header.material_index_size, self._SIGNED_INDEX)
        self.__boneIndex = self.__indexReader(pmx_header.bone_index_size, self._SIGNED_INDEX)
        self.__morphIndex = self.__indexReader(pmx_header.morph_index_size, self._SIGNED_INDEX)
        self.__rigidIndex = self.__indexReader(pmx_header.rigid_index_size, self._SIGNED_INDEX)

    def __indexReader(self, size: int, typedict: Dict[int, str]) -> Callable[[], int]:
        if size not in typedict:
            raise ValueError('invalid data size %s'%str(size))
        fmt = struct.Struct(typedict[size])
        unpack = self.__unpack
        def read() -> int:
            return unpack(fmt)[0]
        return read

    def __take(self, size: int) -> int:
        pos = self.__pos
        if size > len(self.__data) - pos:
            raise TruncatedInputError(pos, size)
        self.__pos = pos + size
        return pos

    def __unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack_from(self.__data, self.__take(fmt.size))

    def current_pos(self) -> int:
        return self.__pos

    def remaining(self) -> int:
        return len(self.__data) - self.__pos

    # READ methods for indexes
    def readVertexIndex(self) -> int:
        return self.__vertexIndex()

    def readBoneIndex(self) -> int:
        return self.__boneIndex()

    def readTextureIndex(self) -> int:
        return self.__textureIndex()

    def readMorphIndex(self) -> int:
        return self.__morphIndex()

    def readRigidIndex(self) -> int:
        return self.__rigidIndex()

    def readMaterialIndex(self) -> int:
        return self.__materialIndex()

    # READ methods for general types
    def readInt(self) -> int:
        return self.__unpack(self._INT)[0]

    def readShort(self) -> int:
        return self.__unpack(self._SHORT)[0]

    def readUnsignedShort(self) -> int:
        return self.__unpack(self._USHORT)[0]

    def readFloat(self) -> float:
        return self.__unpack(self._FLOAT)[0]

    def readVector(self, size: int) -> Tuple[float, ...]:
        return self.__unpack(self._VECTORS[size])

    def readByte(self) -> int:
        return self.__unpack(self._BYTE)[0]

    def readSignedByte(self) -> int:
        return self.__unpack(self._SBYTE)[0]

    def readBytes(self, length: int) -> bytes:
        pos = self.__take(length)
        return self.__data[pos:pos + length]

    def readStr(self) -> str:
        offset = self.__pos
        length = self.readInt()
        if length < 0:
            raise InvalidCountError(Section.TEXT, length, offset, 'negative text length')
        charset = self.header().encoding.charset
        pos = self.__take(length)
        if charset == 'utf-16-le' and length % 2:
            raise InvalidTextError(pos, 'odd byte length %d for UTF-16LE text' % length)
        try:
            return str(self.__data[pos:pos + length], charset)
        except UnicodeDecodeError as e:
            raise InvalidTextError(pos + e.start, e.reason) from e

    def readCount(self, section: str, record_size: int = 1) -> int:
        """
        Read a signed 32-bit record count.
        A count whose records cannot fit in the remaining bytes (at record_size bytes minimum each) is reported as truncation right away.
        """
        offset = self.__pos
        count = self.readInt()
        if count < 0:
            raise InvalidCountError(section, count, offset)
        if count * record_size > self.remaining():
            raise TruncatedInputError(self.__pos, count * record_size)
        return count


class Encoding:
    _MAP = [
        (0, 'utf-16-le'),
        (1, 'utf-8'),
        ]

    def __init__(self, arg: Union[int, str]):
        t = None
        if isinstance(arg, str):
            t = [x for x in self._MAP if x[1] == arg]
            if len(t) == 0:
                raise ValueError('invalid charset %s'%arg)
        elif isinstance(arg, int):
            t = [x for x in self._MAP if x[0] == arg]
            if len(t) == 0:
                raise ValueError('invalid index %d'%arg)
        else:
            raise ValueError('invalid argument type')
        self.index, self.charset = t[0]

    @classmethod
    def is_valid(cls, index: int) -> bool:
        return any(i == index for i, _ in cls._MAP)

    def __eq__(self, other):
        if not isinstance(other, Encoding):
            return NotImplemented
        return self.index == other.index

    def __hash__(self):
        return hash(self.index)

    def __repr__(self):
        return '<Encoding charset %s>'%self.charset


class _Element:
    """Base of decoded records. Equality compares every slot, so two parses of one buffer compare equal."""
    __slots__ = ()

    def _values(self) -> tuple:
        return tuple(getattr(self, name)
                     for cls in type(self).__mro__
                     for name in cls.__dict__.get('__slots__', ()))

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self._values() == other._values()

    __hash__ = None


class Header(_Element):
    PMX_SIGN = b'PMX '
    VERSIONS = (2.0, 2.1)
    GLOBALS_COUNT = 8
    FIXED_SIZE = 4 + 4 + 1 + 8 # signature, version, globals count, globals
    INDEX_SIZES = (1, 2, 4)
    MAX_ADDITIONAL_UVS = 4

    _INDEX_ATTRS = (
        'vertex_index_size',
        'texture_index_size',
        'material_index_size',
        'bone_index_size',
        'morph_index_size',
        'rigid_index_size',
        )

    __slots__ = ('sign', 'version', 'encoding', 'additional_uvs') + _INDEX_ATTRS + ('_frozen',)

    def __init__(self):
        object.__setattr__(self, '_frozen', False)
        self.sign = self.PMX_SIGN
        self.version = 0.0

        self.encoding = Encoding('utf-16-le')
        self.additional_uvs = 0

        self.vertex_index_size = 1
        self.texture_index_size = 1
        self.material_index_size = 1
        self.bone_index_size = 1
        self.morph_index_size = 1
        self.rigid_index_size = 1

    def __setattr__(self, name, value):
        if self._frozen:
            raise AttributeError('Header is read-only once loaded (%s)' % name)
        object.__setattr__(self, name, value)

    @property
    def is_pmx21(self) -> bool:
        return self.version == 2.1

    def load(self, fs: ReadStream):
        if fs.remaining() < self.FIXED_SIZE:
            raise TruncatedInputError(fs.current_pos(), self.FIXED_SIZE)

        self.sign = fs.readBytes(4)
        if self.sign != self.PMX_SIGN:
            raise MalformedHeaderError('File signature is invalid: %r' % self.sign, 0)

        offset = fs.current_pos()
        version = fs.readFloat()
        # stored as float32, so 2.1 reads back as 2.0999999
        matched = [v for v in self.VERSIONS if abs(version - v) < 1e-3]
        if not matched:
            raise UnsupportedVersionError(version, offset)
        self.version = matched[0]

        offset = fs.current_pos()
        num_globals = fs.readByte()
        if num_globals < self.GLOBALS_COUNT:
            raise MalformedHeaderError('File header declares %d globals, at least %d are required.' % (num_globals, self.GLOBALS_COUNT), offset)

        offset = fs.current_pos()
        encoding = fs.readByte()
        if not Encoding.is_valid(encoding):
            raise UnknownVariantError('text encoding', encoding, offset)
        self.encoding = Encoding(encoding)

        offset = fs.current_pos()
        self.additional_uvs = fs.readByte()
        if self.additional_uvs > self.MAX_ADDITIONAL_UVS:
            raise InvalidCountError(Section.ADDITIONAL_UV, self.additional_uvs, offset)

        for attr in self._INDEX_ATTRS:
            offset = fs.current_pos()
            size = fs.readByte()
            if size not in self.INDEX_SIZES:
                raise UnknownVariantError(attr.replace('_', ' '), size, offset)
            setattr(self, attr, size)

        fs.readBytes(num_globals - self.GLOBALS_COUNT) # globals unknown to PMX 2.0/2.1
        self._frozen = True

    def __repr__(self):
        return '<Header version %.1f, encoding %s, uvs %d, vtx %d, tex %d, mat %d, bone %d, morph %d, rigid %d>'%(
            self.version,
            str(self.encoding),
            self.additional_uvs,
            self.vertex_index_size,
            self.texture_index_size,
            self.material_index_size,
            self.bone_index_size,
            self.morph_index_size,
            self.rigid_index_size,
            )


################################################################################
# Model Root Class
################################################################################
class Model:
    def __init__(self):
        self.header: Optional[Header] = None

        self.name = ""
        self.name_e = ""
        self.comment = ""
        self.comment_e = ""

        self.vertices: List[Vertex] = []
        self.faces: List[Face] = []
        self.textures: List[Texture] = []
        self.materials: NamedElements[Material] = NamedElements[Material]()
        self.bones: NamedElements[Bone] = NamedElements[Bone]()
        self.morphs: NamedElements[Morph] = NamedElements[Morph]()

        self.display_groups: NamedElements[DisplayGroup] = NamedElements[DisplayGroup]()

        self.rigids: NamedElements[RigidBody] = NamedElements[RigidBody]()
        self.joints: NamedElements[Joint] = NamedElements[Joint]()
        self.soft_bodies: NamedElements[SoftBody] = NamedElements[SoftBody]() # PMX 2.1 only, empty otherwise

    def _fields(self) -> tuple:
        return (self.header, self.name, self.name_e, self.comment, self.comment_e,
                self.vertices, self.faces, self.textures, self.materials, self.bones, self.morphs,
                self.display_groups, self.rigids, self.joints, self.soft_bodies)

    def __eq__(self, other):
        if not isinstance(other, Model):
            return NotImplemented
        return self._fields() == other._fields()

    __hash__ = None

    ################################################################################
    def load(self, fs: ReadStream):
        if self.header is not None:
            raise ValueError("Model already loaded. Please create a new Model instance to load another buffer.")

        self.header = header = fs.header()

        self.name = fs.readStr()
        self.name_e = fs.readStr()

        self.comment = fs.readStr()
        self.comment_e = fs.readStr()

        ########################################
        # Load Vertices
        num_vertices = fs.readCount(Section.VERTEX, Vertex.min_size(header))
        for i in range(num_vertices):
            v = Vertex()
            v.load(fs) # bone indices are checked by validate() once bones are loaded
            self.vertices.append(v)

        ########################################
        # Load Faces (the count is the number of vertex indices, 3 per face)
        offset = fs.current_pos()
        num_faces = fs.readCount(Section.FACE, header.vertex_index_size)
        if num_faces % 3 != 0:
            raise InvalidCountError(Section.FACE, num_faces, offset, 'face index count is not a multiple of 3')
        for i in range(num_faces // 3):
            face = Face()
            face.load(fs)
            self.faces.append(face)

        ########################################
        # Load Textures
        num_textures = fs.readCount(Section.TEXTURE, 4)
        for i in range(num_textures):
            self.textures.append(Texture.load(fs))

        ########################################
        # Load Materials
        num_materials = fs.readCount(Section.MATERIAL)
        for i in range(num_materials):
            m = Material()
            m.load(fs)
            self.materials.append(m)

        ########################################
        # Load Bones
        num_bones = fs.readCount(Section.BONE)
        for i in range(num_bones):
            b = Bone()
            b.load(fs)
            self.bones.append(b)

        ########################################
        # Load Morphs
        num_morph = fs.readCount(Section.MORPH)
        for i in range(num_morph):
            self.morphs.append(Morph.create(fs))

        ########################################
        # Load Display Groups
        num_disp = fs.readCount(Section.DISPLAY)
        for i in range(num_disp):
            d = DisplayGroup()
            d.load(fs)
            self.display_groups.append(d)

        ########################################
        # Load Rigid Bodies
        num_rigid = fs.readCount(Section.RIGID)
        for i in range(num_rigid):
            r = RigidBody()
            r.load(fs)
            self.rigids.append(r)

        ########################################
        # Load Joints
        num_joints = fs.readCount(Section.JOINT)
        for i in range(num_joints):
            j = Joint()
            j.load(fs, header)
            self.joints.append(j)

        ########################################
        # Load Soft Bodies (PMX 2.1 only)
        if header.is_pmx21:
            num_soft = fs.readCount(Section.SOFT_BODY)
            for i in range(num_soft):
                s = SoftBody()
                s.load(fs)
                self.soft_bodies.append(s)

    def __repr__(self):
        return '<Model name %s, name_e %s, vertices %d, faces %d, materials %d, bones %d, morphs %d>'%(
            self.name,
            self.name_e,
            len(self.vertices),
            len(self.faces),
            len(self.materials),
            len(self.bones),
            len(self.morphs),
            )

    ################################################################################
    # Helper functions for consumers of the parsed model
    ################################################################################
    def material_faces(self, material: Union[int, Material]) -> List[Face]:
        """Faces drawn with a material. Materials own consecutive runs of the face list in material order."""
        index = material if isinstance(material, int) else self.materials.index(material)
        if not 0 <= index < len(self.materials):
            raise ValueError(f"Material {material} not found in model.")
        start = sum(m.vertex_count for m in self.materials[:index]) // 3
        return self.faces[start:start + self.materials[index].vertex_count // 3]

    def texture_path(self, index: int) -> Optional[Texture]:
        """Texture path for a texture index, None for the sentinel or an out of range index."""
        if 0 <= index < len(self.textures):
            return self.textures[index]
        return None


class Vertex(_Element):
    __slots__ = ("co","normal","uv","additional_uvs","weight","edge_scale")

    def __init__(self):
        self.co = (0.0, 0.0, 0.0)
        self.normal = (0.0, 0.0, 0.0)
        self.uv = (0.0, 0.0)
        self.additional_uvs: Tuple[Tuple[float, ...], ...] = ()
        self.weight: Optional[BoneWeight] = None
        self.edge_scale = 1.0

    @staticmethod
    def min_size(header: Header) -> int:
        # position, normal, uv, additional uvs, weight type + one bone index, edge scale
        return 12 + 12 + 8 + 16 * header.additional_uvs + 1 + header.bone_index_size + 4

    def __repr__(self):
        return '<Vertex co %s, normal %s, uv %s, additional_uvs %s, weight %s, edge_scale %s>'%(
            str(self.co),
            str(self.normal),
            str(self.uv),
            str(self.additional_uvs),
            str(self.weight),
            str(self.edge_scale),
            )

    def load(self, fs: ReadStream):
        self.co = fs.readVector(3)
        self.normal = fs.readVector(3)
        self.uv = fs.readVector(2)
        self.additional_uvs = tuple(fs.readVector(4) for _ in range(fs.header().additional_uvs))
        self.weight = BoneWeight.create(fs)
        self.edge_scale = fs.readFloat()


class BoneWeight(_Element):
    """Skinning descriptor of a vertex. The deform kind is the subclass."""
    __slots__ = ("bone_indices", "weights")
    BDEF1 = 0
    BDEF2 = 1
    BDEF4 = 2
    SDEF  = 3
    QDEF  = 4 # PMX 2.1

    TYPE: int = -1

    def __init__(self):
        self.bone_indices: Tuple[int, ...] = ()
        self.weights: Tuple[float, ...] = ()

    def __repr__(self):
        return '<%s bones %s, weights %s>'%(type(self).__name__, str(self.bone_indices), str(self.weights))

    @property
    def type(self) -> int:
        return self.TYPE

    @staticmethod
    def create(fs: ReadStream) -> BoneWeight:
        _CLASSES = {
            BoneWeight.BDEF1: BoneWeightBDEF1,
            BoneWeight.BDEF2: BoneWeightBDEF2,
            BoneWeight.BDEF4: BoneWeightBDEF4,
            BoneWeight.SDEF: BoneWeightSDEF,
            BoneWeight.QDEF: BoneWeightQDEF,
            }

        offset = fs.current_pos()
        weight_type = fs.readByte()
        cls = _CLASSES.get(weight_type)
        if cls is None or (weight_type == BoneWeight.QDEF and not fs.header().is_pmx21):
            raise UnknownVariantError('vertex weight type', weight_type, offset)
        ret = cls()
        ret.load(fs)
        return ret

    def load(self, fs: ReadStream):
        raise NotImplementedError(f"Should be implemented in subclass {self.__class__.__name__}")

class BoneWeightBDEF1(BoneWeight):
    __slots__ = ()
    TYPE = BoneWeight.BDEF1

    def load(self, fs: ReadStream):
        self.bone_indices = (fs.readBoneIndex(),)
        self.weights = (1.0,)

class BoneWeightBDEF2(BoneWeight):
    __slots__ = ()
    TYPE = BoneWeight.BDEF2

    def load(self, fs: ReadStream):
        self.bone_indices = (fs.readBoneIndex(), fs.readBoneIndex())
        weight = fs.readFloat() # weight of the first bone, the second gets the rest
        self.weights = (weight, 1.0 - weight)

class BoneWeightBDEF4(BoneWeight):
    __slots__ = ()
    TYPE = BoneWeight.BDEF4

    def load(self, fs: ReadStream):
        self.bone_indices = tuple(fs.readBoneIndex() for _ in range(4))
        self.weights = fs.readVector(4)

class BoneWeightSDEF(BoneWeightBDEF2):
    __slots__ = ("c", "r0", "r1")
    TYPE = BoneWeight.SDEF

    def __init__(self):
        BoneWeightBDEF2.__init__(self)
        self.c = (0.0, 0.0, 0.0)
        self.r0 = (0.0, 0.0, 0.0)
        self.r1 = (0.0, 0.0, 0.0)

    def load(self, fs: ReadStream):
        BoneWeightBDEF2.load(self, fs)
        self.c = fs.readVector(3)
        self.r0 = fs.readVector(3)
        self.r1 = fs.readVector(3)

class BoneWeightQDEF(BoneWeightBDEF4):
    __slots__ = ()
    TYPE = BoneWeight.QDEF


class Face(_Element):
    __slots__ = ("indices",)

    def __init__(self, indices: Tuple[int, int, int] = (0, 0, 0)):
        self.indices = indices

    def __repr__(self):
        return '<Face v1 %d, v2 %d, v3 %d>'%self.indices

    def load(self, fs: ReadStream):
        self.indices = (fs.readVertexIndex(), fs.readVertexIndex(), fs.readVertexIndex())


class Texture(str):
    """
    Texture file path, relative to the model file.
    Only the path is stored, the image itself is never loaded.
    """
    @classmethod
    def from_path(cls, path: str) -> Texture:
        if not isinstance(path, str):
            raise ValueError("Texture path must be a string.")
        return cls(path)

    @classmethod
    def load(cls, fs: ReadStream) -> Texture:
        return cls.from_path(fs.readStr())


class ToonReference(_Element):
    """Toon texture of a material: one of the 10 shared toon textures or an entry of the texture list."""
    __slots__ = ()

    @staticmethod
    def create(fs: ReadStream) -> ToonReference:
        offset = fs.current_pos()
        flag = fs.readByte()
        if flag == 1:
            return SharedToon(fs.readByte())
        elif flag == 0:
            return TextureToon(fs.readTextureIndex())
        raise UnknownVariantError('material toon flag', flag, offset)

class SharedToon(ToonReference):
    __slots__ = ("index",)
    COUNT = 10 # toon01.bmp - toon10.bmp

    def __init__(self, index: int = 0):
        self.index = index

    def texture_name(self) -> str:
        return 'toon%02d.bmp' % (self.index + 1)

    def __repr__(self):
        return '<SharedToon %d>'%self.index

class TextureToon(ToonReference):
    __slots__ = ("texture_index",)

    def __init__(self, texture_index: int = NONE_INDEX):
        self.texture_index = texture_index

    def __repr__(self):
        return '<TextureToon texture %d>'%self.texture_index


class Material(_Element):
    SPHERE_MODE_OFF = 0
    SPHERE_MODE_MULT = 1
    SPHERE_MODE_ADD = 2
    SPHERE_MODE_SUBTEX = 3

    __slots__ = (
        "name", "name_e",
        "diffuse", "specular", "shininess", "ambient",
        "is_double_sided", "enabled_drop_shadow", "enabled_self_shadow_map", "enabled_self_shadow",
        "enabled_toon_edge", "enabled_vertex_color", "enabled_point_draw", "enabled_line_draw",
        "edge_color", "edge_size",
        "texture_index", "sphere_texture_index", "sphere_texture_mode", "toon",
        "comment", "vertex_count",
        )

    def __init__(self):
        self.name = ""
        self.name_e = ""

        self.diffuse = (1.0, 1.0, 1.0, 1.0)
        self.specular = (0.0, 0.0, 0.0)
        self.shininess = 0.0
        self.ambient = (0.0, 0.0, 0.0)

        self.is_double_sided = True
        self.enabled_drop_shadow = True
        self.enabled_self_shadow_map = True
        self.enabled_self_shadow = True
        self.enabled_toon_edge = False
        self.enabled_vertex_color = False # PMX 2.1
        self.enabled_point_draw = False # PMX 2.1
        self.enabled_line_draw = False # PMX 2.1

        self.edge_color = (0.0, 0.0, 0.0, 1.0)
        self.edge_size = 1.0

        self.texture_index = NONE_INDEX
        self.sphere_texture_index = NONE_INDEX
        self.sphere_texture_mode = self.SPHERE_MODE_OFF
        self.toon: ToonReference = SharedToon(0)

        self.comment = ''

        # Number of face indices (3 per face) drawn with this material
        self.vertex_count = 0

    def __repr__(self):
        return '<Material name %s, name_e %s, diffuse %s, texture %d, sphere_texture %d, toon %s, faces %d>'%(
            self.name,
            self.name_e,
            str(self.diffuse),
            self.texture_index,
            self.sphere_texture_index,
            str(self.toon),
            self.vertex_count // 3,
        )

    def load(self, fs: ReadStream):
        self.name = fs.readStr()
        self.name_e = fs.readStr()

        self.diffuse = fs.readVector(4)
        self.specular = fs.readVector(3)
        self.shininess = fs.readFloat()
        self.ambient = fs.readVector(3)

        flags = fs.readByte()
        self.is_double_sided = bool(flags & 1)
        self.enabled_drop_shadow = bool(flags & 2)
        self.enabled_self_shadow_map = bool(flags & 4)
        self.enabled_self_shadow = bool(flags & 8)
        self.enabled_toon_edge = bool(flags & 16)
        self.enabled_vertex_color = bool(flags & 32)
        self.enabled_point_draw = bool(flags & 64)
        self.enabled_line_draw = bool(flags & 128)

        self.edge_color = fs.readVector(4)
        self.edge_size = fs.readFloat()

        self.texture_index = fs.readTextureIndex()
        self.sphere_texture_index = fs.readTextureIndex()

        offset = fs.current_pos()
        self.sphere_texture_mode = fs.readByte()
        if self.sphere_texture_mode > self.SPHERE_MODE_SUBTEX:
            raise UnknownVariantError('sphere texture mode', self.sphere_texture_mode, offset)

        self.toon = ToonReference.create(fs)

        self.comment = fs.readStr()

        offset = fs.current_pos()
        self.vertex_count = fs.readInt()
        if self.vertex_count < 0 or self.vertex_count % 3 != 0:
            raise InvalidCountError(Section.MATERIAL, self.vertex_count, offset, 'invalid face index count')


class Coordinate(_Element): # Used by Bone.localCoordinate
    __slots__ = ("x_axis", "z_axis")

    def __init__(self, xAxis, zAxis):
        self.x_axis = xAxis
        self.z_axis = zAxis


class TailOffset(_Element):
    """Bone tail given as an offset from the bone's position."""
    __slots__ = ("vector",)

    def __init__(self, vector=(0.0, 0.0, 0.0)):
        self.vector = vector

class TailBone(_Element):
    """Bone tail given as another bone."""
    __slots__ = ("bone_index",)

    def __init__(self, bone_index: int = NONE_INDEX):
        self.bone_index = bone_index


class Bone(_Element):
    __slots__ = (
        "name", "name_e", "location", "parent_index", "transform_order", "tail",
        "isRotatable", "isMovable", "isVisible", "isControllable", "isIK",
        "hasAdditionalRotate", "hasAdditionalLocation",
        "additionalTransformBoneIndex", "additionalTransformInfluence",
        "fixed_axis", "localCoordinate", "transAfterPhys", "externalTransKey", "ik",
        )

    def __init__(self):
        self.name = ""
        self.name_e = ""

        self.location = (0.0, 0.0, 0.0)
        self.parent_index = NONE_INDEX
        self.transform_order = 0

        self.tail: Union[TailOffset, TailBone] = TailOffset()

        self.isRotatable = True
        self.isMovable = True
        self.isVisible = True
        self.isControllable = True

        self.isIK = False

        self.hasAdditionalRotate = False
        self.hasAdditionalLocation = False

        self.additionalTransformBoneIndex = NONE_INDEX
        self.additionalTransformInfluence = 0.0

        self.fixed_axis: Optional[Tuple[float, ...]] = None

        self.localCoordinate: Optional[Coordinate] = None

        self.transAfterPhys = False

        self.externalTransKey: Optional[int] = None

        self.ik: Optional[BoneIK] = None

    def __repr__(self):
        return '<Bone name %s, name_e %s>'%(
            self.name,
            self.name_e,)

    def load(self, fs: ReadStream):
        self.name = fs.readStr()
        self.name_e = fs.readStr()

        self.location = fs.readVector(3)
        self.parent_index = fs.readBoneIndex()
        self.transform_order = fs.readInt()

        flags = fs.readUnsignedShort()
        if flags & 0x0001: # tail is a Bone
            self.tail = TailBone(fs.readBoneIndex())
        else:
            self.tail = TailOffset(fs.readVector(3))

        self.isRotatable    = ((flags & 0x0002) != 0)
        self.isMovable      = ((flags & 0x0004) != 0)
        self.isVisible      = ((flags & 0x0008) != 0)
        self.isControllable = ((flags & 0x0010) != 0)

        self.isIK           = ((flags & 0x0020) != 0)

        self.hasAdditionalRotate = ((flags & 0x0100) != 0)
        self.hasAdditionalLocation = ((flags & 0x0200) != 0)
        if self.hasAdditionalRotate or self.hasAdditionalLocation:
            self.additionalTransformBoneIndex = fs.readBoneIndex()
            self.additionalTransformInfluence = fs.readFloat()

        if flags & 0x0400:
            self.fixed_axis = fs.readVector(3)

        if flags & 0x0800:
            xaxis = fs.readVector(3)
            zaxis = fs.readVector(3)
            self.localCoordinate = Coordinate(xaxis, zaxis)

        self.transAfterPhys = ((flags & 0x1000) != 0)

        if flags & 0x2000:
            self.externalTransKey = fs.readInt()

        if self.isIK:
            self.ik = BoneIK()
            self.ik.load(fs)


class BoneIK(_Element):
    __slots__ = ("target_index", "loopCount", "rotationConstraint", "links")

    def __init__(self):
        self.target_index = NONE_INDEX
        self.loopCount = 8
        self.rotationConstraint = 0.03 # radians per iteration
        self.links: List[IKLink] = []

    def __repr__(self):
        return '<BoneIK target %d, links %d>'%(self.target_index, len(self.links))

    def load(self, fs: ReadStream):
        self.target_index = fs.readBoneIndex()
        self.loopCount = fs.readInt()
        self.rotationConstraint = fs.readFloat()

        iklink_num = fs.readCount(Section.BONE, fs.header().bone_index_size + 1)
        self.links = []
        for i in range(iklink_num):
            link = IKLink()
            link.load(fs)
            self.links.append(link)


class IKLink(_Element):
    __slots__ = ("bone_index", "minimumAngle", "maximumAngle")

    def __init__(self):
        self.bone_index = NONE_INDEX
        self.minimumAngle: Optional[Tuple[float, ...]] = None
        self.maximumAngle: Optional[Tuple[float, ...]] = None

    def __repr__(self):
        return '<IKLink bone %d>'%self.bone_index

    def load(self, fs: ReadStream):
        self.bone_index = fs.readBoneIndex()
        offset = fs.current_pos()
        flag = fs.readByte()
        if flag == 1:
            self.minimumAngle = fs.readVector(3)
            self.maximumAngle = fs.readVector(3)
        elif flag != 0:
            raise UnknownVariantError('IK link angle limit flag', flag, offset)


class Morph(_Element):
    CATEGORY_SYSTEM = 0
    CATEGORY_EYEBROW = 1
    CATEGORY_EYE = 2
    CATEGORY_MOUTH = 3
    CATEGORY_OTHER = 4

    TYPE_GROUP = 0
    TYPE_VERTEX = 1
    TYPE_BONE = 2
    TYPE_UV = 3 # 3-7: base UV and additional UV1-4
    TYPE_MATERIAL = 8
    TYPE_FLIP = 9 # PMX 2.1
    TYPE_IMPULSE = 10 # PMX 2.1

    __slots__ = ("name", "name_e", "category", "offsets")

    OFFSET_CLASS: type = type(None)

    def __init__(self, name: str = "", name_e: str = "", category: int = CATEGORY_OTHER, **kwargs):
        self.offsets: list = []
        self.name: str = name
        self.name_e: str = name_e
        self.category: int = category

    def __repr__(self):
        return '<%s name %s, name_e %s, offsets %d>'%(type(self).__name__, self.name, self.name_e, len(self.offsets))

    def type_index(self) -> int:
        raise NotImplementedError

    def type_name(self) -> str:
        return type(self).__name__[:-len('Morph')]

    @staticmethod
    def create(fs: ReadStream) -> Morph:
        _CLASSES = {
            0: GroupMorph,
            1: VertexMorph,
            2: BoneMorph,
            3: UVMorph,
            4: UVMorph,
            5: UVMorph,
            6: UVMorph,
            7: UVMorph,
            8: MaterialMorph,
            9: FlipMorph,
            10: ImpulseMorph,
            }

        name = fs.readStr()
        name_e = fs.readStr()

        offset = fs.current_pos()
        category = fs.readByte()
        if category > Morph.CATEGORY_OTHER:
            raise UnknownVariantError('morph category', category, offset)

        offset = fs.current_pos()
        typeIndex = fs.readByte()
        cls = _CLASSES.get(typeIndex)
        if cls is None or (typeIndex >= Morph.TYPE_FLIP and not fs.header().is_pmx21):
            raise UnknownVariantError('morph type', typeIndex, offset)

        ret = cls(name, name_e, category, type_index = typeIndex)
        ret.load(fs)
        return ret

    def load(self, fs: ReadStream):
        num = fs.readCount(Section.MORPH, self.OFFSET_CLASS.size(fs.header()))
        self.offsets = []
        for i in range(num):
            t = self.OFFSET_CLASS()
            t.load(fs)
            self.offsets.append(t)


class GroupMorphOffset(_Element):
    __slots__ = ("morph_index", "factor")

    def __init__(self):
        self.morph_index = NONE_INDEX
        self.factor: float = 0.0

    @staticmethod
    def size(header: Header) -> int:
        return header.morph_index_size + 4

    def load(self, fs: ReadStream):
        self.morph_index = fs.readMorphIndex()
        self.factor = fs.readFloat()

class GroupMorph(Morph):
    __slots__ = ()
    OFFSET_CLASS = GroupMorphOffset

    def type_index(self):
        return Morph.TYPE_GROUP


class VertexMorphOffset(_Element):
    __slots__ = ("vertex_index", "offset")

    def __init__(self):
        self.vertex_index = 0
        self.offset = (0.0, 0.0, 0.0)

    @staticmethod
    def size(header: Header) -> int:
        return header.vertex_index_size + 12

    def load(self, fs: ReadStream):
        self.vertex_index = fs.readVertexIndex()
        self.offset = fs.readVector(3)

class VertexMorph(Morph):
    __slots__ = ()
    OFFSET_CLASS = VertexMorphOffset

    def type_index(self):
        return Morph.TYPE_VERTEX


class BoneMorphOffset(_Element):
    __slots__ = ("bone_index", "location_offset", "rotation_offset")

    def __init__(self):
        self.bone_index = NONE_INDEX
        self.location_offset = (0.0, 0.0, 0.0)
        self.rotation_offset = (0.0, 0.0, 0.0, 1.0) # quaternion xyzw

    def __repr__(self):
        return '<BoneMorphOffset bone %d, location_offset %s, rotation_offset %s>'%(
            self.bone_index,
            str(self.location_offset),
            str(self.rotation_offset),
            )

    @staticmethod
    def size(header: Header) -> int:
        return header.bone_index_size + 12 + 16

    def load(self, fs: ReadStream):
        self.bone_index = fs.readBoneIndex()
        self.location_offset = fs.readVector(3)
        self.rotation_offset = fs.readVector(4)

class BoneMorph(Morph):
    __slots__ = ()
    OFFSET_CLASS = BoneMorphOffset

    def type_index(self):
        return Morph.TYPE_BONE


class UVMorphOffset(_Element):
    __slots__ = ("vertex_index", "offset")

    def __init__(self):
        self.vertex_index = 0
        self.offset = (0.0, 0.0, 0.0, 0.0)

    @staticmethod
    def size(header: Header) -> int:
        return header.vertex_index_size + 16

    def load(self, fs: ReadStream):
        self.vertex_index = fs.readVertexIndex()
        self.offset = fs.readVector(4)

class UVMorph(Morph):
    __slots__ = ("uv_index",)
    OFFSET_CLASS = UVMorphOffset

    def __init__(self, *args, **kwargs):
        self.uv_index = kwargs.get('type_index', Morph.TYPE_UV) - Morph.TYPE_UV # 0: base UV, 1-4: additional UVs
        Morph.__init__(self, *args, **kwargs)

    def type_index(self):
        return self.uv_index + Morph.TYPE_UV


class MaterialMorphOffset(_Element):
    TYPE_MULT = 0
    TYPE_ADD = 1

    __slots__ = (
        "material_index", "offset_type",
        "diffuse_offset", "specular_offset", "shininess_offset", "ambient_offset",
        "edge_color_offset", "edge_size_offset",
        "texture_factor", "sphere_texture_factor", "toon_texture_factor",
        )

    def __init__(self):
        self.material_index = NONE_INDEX # NONE_INDEX applies to all materials
        self.offset_type = self.TYPE_MULT
        self.diffuse_offset = (0.0, 0.0, 0.0, 0.0)
        self.specular_offset = (0.0, 0.0, 0.0)
        self.shininess_offset = 0.0
        self.ambient_offset = (0.0, 0.0, 0.0)
        self.edge_color_offset = (0.0, 0.0, 0.0, 0.0)
        self.edge_size_offset = 0.0
        self.texture_factor = (0.0, 0.0, 0.0, 0.0)
        self.sphere_texture_factor = (0.0, 0.0, 0.0, 0.0)
        self.toon_texture_factor = (0.0, 0.0, 0.0, 0.0)

    @staticmethod
    def size(header: Header) -> int:
        return header.material_index_size + 1 + 16 + 12 + 4 + 12 + 16 + 4 + 16 * 3

    def load(self, fs: ReadStream):
        self.material_index = fs.readMaterialIndex()
        offset = fs.current_pos()
        self.offset_type = fs.readByte()
        if self.offset_type not in (self.TYPE_MULT, self.TYPE_ADD):
            raise UnknownVariantError('material morph operation', self.offset_type, offset)
        self.diffuse_offset = fs.readVector(4)
        self.specular_offset = fs.readVector(3)
        self.shininess_offset = fs.readFloat()
        self.ambient_offset = fs.readVector(3)
        self.edge_color_offset = fs.readVector(4)
        self.edge_size_offset = fs.readFloat()
        self.texture_factor = fs.readVector(4)
        self.sphere_texture_factor = fs.readVector(4)
        self.toon_texture_factor = fs.readVector(4)

class MaterialMorph(Morph):
    __slots__ = ()
    OFFSET_CLASS = MaterialMorphOffset

    def type_index(self):
        return Morph.TYPE_MATERIAL


class FlipMorphOffset(GroupMorphOffset):
    __slots__ = ()

class FlipMorph(Morph):
    __slots__ = ()
    OFFSET_CLASS = FlipMorphOffset

    def type_index(self):
        return Morph.TYPE_FLIP


class ImpulseMorphOffset(_Element):
    __slots__ = ("rigid_index", "is_local", "velocity", "torque")

    def __init__(self):
        self.rigid_index = NONE_INDEX
        self.is_local = False
        self.velocity = (0.0, 0.0, 0.0)
        self.torque = (0.0, 0.0, 0.0)

    @staticmethod
    def size(header: Header) -> int:
        return header.rigid_index_size + 1 + 12 + 12

    def load(self, fs: ReadStream):
        self.rigid_index = fs.readRigidIndex()
        self.is_local = fs.readByte() != 0
        self.velocity = fs.readVector(3)
        self.torque = fs.readVector(3)

class ImpulseMorph(Morph):
    __slots__ = ()
    OFFSET_CLASS = ImpulseMorphOffset

    def type_index(self):
        return Morph.TYPE_IMPULSE


class DisplayGroup(_Element):
    __slots__ = ("name", "name_e", "isSpecial", "items")

    def __init__(self):
        self.name: str = ""
        self.name_e: str = ""

        self.isSpecial: bool = False
        self.items: List[DisplayItem] = []

    def __repr__(self):
        return '<Display name %s, name_e %s, items %d>'%(
            self.name,
            self.name_e,
            len(self.items),
            )

    def load(self, fs: ReadStream):
        self.name = fs.readStr()
        self.name_e = fs.readStr()

        self.isSpecial = (fs.readByte() == 1)
        num = fs.readCount(Section.DISPLAY, 2)
        self.items = []
        for i in range(num):
            item = DisplayItem()
            item.load(fs)
            self.items.append(item)


class DisplayItem(_Element):
    TYPE_BONE = 0
    TYPE_MORPH = 1

    __slots__ = ("disp_type", "index")

    def __init__(self, disp_type: int = TYPE_BONE, index: int = 0):
        self.disp_type: int = disp_type
        self.index: int = index

    def __repr__(self):
        return f'<DisplayItem type {self.disp_type}, index {self.index}>'

    def load(self, fs: ReadStream):
        offset = fs.current_pos()
        self.disp_type = fs.readByte()
        if self.disp_type == self.TYPE_BONE:
            self.index = fs.readBoneIndex()
        elif self.disp_type == self.TYPE_MORPH:
            self.index = fs.readMorphIndex()
        else:
            raise UnknownVariantError('display item type', self.disp_type, offset)


class RigidShape(_Element):
    """Collision shape of a rigid body. Dimensions are stored as a vec3 whose meaning depends on the shape."""
    __slots__ = ("size",)
    TYPE: int = -1

    def __init__(self, size=(0.0, 0.0, 0.0)):
        self.size = size

    def __repr__(self):
        return '<%s size %s>'%(type(self).__name__, str(self.size))

    @staticmethod
    def create(fs: ReadStream) -> RigidShape:
        _CLASSES = {
            RigidBody.TYPE_SPHERE: SphereShape,
            RigidBody.TYPE_BOX: BoxShape,
            RigidBody.TYPE_CAPSULE: CapsuleShape,
            }
        offset = fs.current_pos()
        shape_type = fs.readByte()
        cls = _CLASSES.get(shape_type)
        if cls is None:
            raise UnknownVariantError('rigid body shape', shape_type, offset)
        return cls(fs.readVector(3))

class SphereShape(RigidShape):
    __slots__ = ()
    TYPE = 0

    @property
    def radius(self) -> float:
        return self.size[0]

class BoxShape(RigidShape):
    __slots__ = ()
    TYPE = 1

    @property
    def half_extents(self) -> Tuple[float, ...]:
        return self.size

class CapsuleShape(RigidShape):
    __slots__ = ()
    TYPE = 2

    @property
    def radius(self) -> float:
        return self.size[0]

    @property
    def height(self) -> float:
        return self.size[1]


class RigidBody(_Element):
    TYPE_SPHERE = 0
    TYPE_BOX = 1
    TYPE_CAPSULE = 2

    MODE_STATIC = 0
    MODE_DYNAMIC = 1
    MODE_DYNAMIC_BONE = 2

    __slots__ = (
        "name", "name_e", "bone_index", "collision_group_number", "collision_group_mask",
        "shape", "location", "rotation",
        "mass", "velocity_attenuation", "rotation_attenuation", "bounce", "friction", "mode",
        )

    def __init__(self):
        self.name = ""
        self.name_e = ""

        self.bone_index = NONE_INDEX
        self.collision_group_number = 0
        self.collision_group_mask = 0

        self.shape: RigidShape = SphereShape()

        self.location = (0.0, 0.0, 0.0)
        self.rotation = (0.0, 0.0, 0.0)

        self.mass = 1.0
        self.velocity_attenuation = 0.0
        self.rotation_attenuation = 0.0
        self.bounce = 0.0
        self.friction = 0.0

        self.mode = self.MODE_STATIC

    def __repr__(self):
        return '<Rigid name %s, name_e %s, shape %s>'%(
            self.name,
            self.name_e,
            str(self.shape),
            )

    def load(self, fs: ReadStream):
        self.name = fs.readStr()
        self.name_e = fs.readStr()

        self.bone_index = fs.readBoneIndex()

        self.collision_group_number = fs.readSignedByte()
        self.collision_group_mask = fs.readUnsignedShort()

        self.shape = RigidShape.create(fs)

        self.location = fs.readVector(3)
        self.rotation = fs.readVector(3)

        self.mass = fs.readFloat()
        self.velocity_attenuation = fs.readFloat()
        self.rotation_attenuation = fs.readFloat()
        self.bounce = fs.readFloat()
        self.friction = fs.readFloat()

        offset = fs.current_pos()
        self.mode = fs.readByte()
        if self.mode > self.MODE_DYNAMIC_BONE:
            raise UnknownVariantError('rigid body physics mode', self.mode, offset)


class Joint(_Element):
    MODE_SPRING6DOF = 0
    MODE_6DOF = 1 # PMX 2.1
    MODE_P2P = 2 # PMX 2.1
    MODE_CONETWIST = 3 # PMX 2.1
    MODE_SLIDER = 4 # PMX 2.1
    MODE_HINGE = 5 # PMX 2.1

    __slots__ = (
        "name", "name_e", "mode", "src_rigid_index", "dst_rigid_index", "location", "rotation",
        "minimum_location", "maximum_location", "minimum_rotation", "maximum_rotation",
        "spring_constant", "spring_rotation_constant",
        )

    def __init__(self):
        self.name = ''
        self.name_e = ''

        self.mode = self.MODE_SPRING6DOF

        self.src_rigid_index = NONE_INDEX
        self.dst_rigid_index = NONE_INDEX

        self.location = (0.0, 0.0, 0.0)
        self.rotation = (0.0, 0.0, 0.0)

        self.minimum_location = (0.0, 0.0, 0.0)
        self.maximum_location = (0.0, 0.0, 0.0)
        self.minimum_rotation = (0.0, 0.0, 0.0)
        self.maximum_rotation = (0.0, 0.0, 0.0)

        self.spring_constant = (0.0, 0.0, 0.0)
        self.spring_rotation_constant = (0.0, 0.0, 0.0)

    def __repr__(self):
        return '<Joint name %s, rigids %d - %d>'%(self.name, self.src_rigid_index, self.dst_rigid_index)

    def load(self, fs: ReadStream, header: Header):
        self.name = fs.readStr()
        self.name_e = fs.readStr()

        offset = fs.current_pos()
        self.mode = fs.readByte()
        last_mode = self.MODE_HINGE if header.is_pmx21 else self.MODE_SPRING6DOF
        if self.mode > last_mode:
            raise UnknownVariantError('joint type', self.mode, offset)

        self.src_rigid_index = fs.readRigidIndex()
        self.dst_rigid_index = fs.readRigidIndex()

        self.location = fs.readVector(3)
        self.rotation = fs.readVector(3)

        self.minimum_location = fs.readVector(3)
        self.maximum_location = fs.readVector(3)
        self.minimum_rotation = fs.readVector(3)
        self.maximum_rotation = fs.readVector(3)

        self.spring_constant = fs.readVector(3)
        self.spring_rotation_constant = fs.readVector(3)


class SoftBodyAnchor(_Element):
    __slots__ = ("rigid_index", "vertex_index", "near_mode")

    def __init__(self, rigid_index: int = NONE_INDEX, vertex_index: int = 0, near_mode: bool = False):
        self.rigid_index = rigid_index
        self.vertex_index = vertex_index
        self.near_mode = near_mode

    def load(self, fs: ReadStream):
        self.rigid_index = fs.readRigidIndex()
        self.vertex_index = fs.readVertexIndex()
        self.near_mode = fs.readByte() != 0


class SoftBody(_Element):
    """PMX 2.1 soft body. The parameter blocks are kept in file order."""
    SHAPE_TRIMESH = 0
    SHAPE_ROPE = 1

    AERO_V_POINT = 0
    AERO_V_TWOSIDED = 1
    AERO_V_ONESIDED = 2
    AERO_F_TWOSIDED = 3
    AERO_F_ONESIDED = 4

    CONFIG_FIELDS = ('VCF', 'DP', 'DG', 'LF', 'PR', 'VC', 'DF', 'MT', 'CHR', 'KHR', 'SHR', 'AHR')
    CLUSTER_FIELDS = ('SRHR_CL', 'SKHR_CL', 'SSHR_CL', 'SR_SPLT_CL', 'SK_SPLT_CL', 'SS_SPLT_CL')
    ITERATION_FIELDS = ('V_IT', 'P_IT', 'D_IT', 'C_IT')
    MATERIAL_FIELDS = ('LST', 'AST', 'VST')

    __slots__ = (
        "name", "name_e", "shape", "material_index", "group", "no_collision_mask",
        "create_blink", "create_cluster", "link_crossing",
        "blink_distance", "cluster_count", "total_mass", "collision_margin", "aero_model",
        "config", "cluster", "iteration", "material", "anchors", "pins",
        )

    def __init__(self):
        self.name = ""
        self.name_e = ""
        self.shape = self.SHAPE_TRIMESH
        self.material_index = NONE_INDEX
        self.group = 0
        self.no_collision_mask = 0
        self.create_blink = False
        self.create_cluster = False
        self.link_crossing = False
        self.blink_distance = 0
        self.cluster_count = 0
        self.total_mass = 0.0
        self.collision_margin = 0.0
        self.aero_model = self.AERO_V_POINT
        self.config: Dict[str, float] = {}
        self.cluster: Dict[str, float] = {}
        self.iteration: Dict[str, int] = {}
        self.material: Dict[str, float] = {}
        self.anchors: List[SoftBodyAnchor] = []
        self.pins: List[int] = [] # vertex indices

    def __repr__(self):
        return '<SoftBody name %s, anchors %d, pins %d>'%(self.name, len(self.anchors), len(self.pins))

    def load(self, fs: ReadStream):
        header = fs.header()
        self.name = fs.readStr()
        self.name_e = fs.readStr()

        offset = fs.current_pos()
        self.shape = fs.readByte()
        if self.shape > self.SHAPE_ROPE:
            raise UnknownVariantError('soft body shape', self.shape, offset)

        self.material_index = fs.readMaterialIndex()
        self.group = fs.readByte()
        self.no_collision_mask = fs.readUnsignedShort()

        flags = fs.readByte()
        self.create_blink = bool(flags & 1)
        self.create_cluster = bool(flags & 2)
        self.link_crossing = bool(flags & 4)

        self.blink_distance = fs.readInt()
        self.cluster_count = fs.readInt()
        self.total_mass = fs.readFloat()
        self.collision_margin = fs.readFloat()

        offset = fs.current_pos()
        self.aero_model = fs.readInt()
        if not self.AERO_V_POINT <= self.aero_model <= self.AERO_F_ONESIDED:
            raise UnknownVariantError('soft body aerodynamics model', self.aero_model, offset)

        self.config = {k: fs.readFloat() for k in self.CONFIG_FIELDS}
        self.cluster = {k: fs.readFloat() for k in self.CLUSTER_FIELDS}
        self.iteration = {k: fs.readInt() for k in self.ITERATION_FIELDS}
        self.material = {k: fs.readFloat() for k in self.MATERIAL_FIELDS}

        num = fs.readCount(Section.SOFT_BODY, header.rigid_index_size + header.vertex_index_size + 1)
        self.anchors = []
        for i in range(num):
            anchor = SoftBodyAnchor()
            anchor.load(fs)
            self.anchors.append(anchor)

        num = fs.readCount(Section.SOFT_BODY, header.vertex_index_size)
        self.pins = [fs.readVertexIndex() for _ in range(num)]


################################################################################
# Reference validation
################################################################################
def _dangling(section: str, record_index: int, target_section: str, values: Iterable[int], limit: int, nullable: bool = False) -> Iterator[DanglingReferenceError]:
    for value in values:
        if nullable and value == NONE_INDEX:
            continue
        if not 0 <= value < limit:
            yield DanglingReferenceError(section, record_index, target_section, value)

def iter_reference_errors(model: Model) -> Iterator[DanglingReferenceError]:
    """Yield every index of the model that does not address an element of its target section."""
    num_vertices = len(model.vertices)
    num_faces = len(model.faces)
    num_textures = len(model.textures)
    num_materials = len(model.materials)
    num_bones = len(model.bones)
    num_morphs = len(model.morphs)
    num_rigids = len(model.rigids)

    for i, v in enumerate(model.vertices):
        yield from _dangling(Section.VERTEX, i, Section.BONE, v.weight.bone_indices, num_bones, nullable=True)

    for i, face in enumerate(model.faces):
        yield from _dangling(Section.FACE, i, Section.VERTEX, face.indices, num_vertices)

    face_end = 0
    for i, mat in enumerate(model.materials):
        yield from _dangling(Section.MATERIAL, i, Section.TEXTURE, (mat.texture_index, mat.sphere_texture_index), num_textures, nullable=True)
        if isinstance(mat.toon, TextureToon):
            yield from _dangling(Section.MATERIAL, i, Section.TEXTURE, (mat.toon.texture_index,), num_textures, nullable=True)
        else:
            yield from _dangling(Section.MATERIAL, i, Section.INTERNAL_TOON, (mat.toon.index,), SharedToon.COUNT)
        if mat.vertex_count:
            face_end += mat.vertex_count // 3
            yield from _dangling(Section.MATERIAL, i, Section.FACE, (face_end - 1,), num_faces)

    for i, bone in enumerate(model.bones):
        refs = [bone.parent_index, bone.additionalTransformBoneIndex]
        if isinstance(bone.tail, TailBone):
            refs.append(bone.tail.bone_index)
        yield from _dangling(Section.BONE, i, Section.BONE, refs, num_bones, nullable=True)
        if bone.ik is not None:
            refs = [bone.ik.target_index] + [link.bone_index for link in bone.ik.links]
            yield from _dangling(Section.BONE, i, Section.BONE, refs, num_bones)

    num_uv_channels = 1 + (model.header.additional_uvs if model.header else 0)
    for i, morph in enumerate(model.morphs):
        if isinstance(morph, (GroupMorph, FlipMorph)):
            yield from _dangling(Section.MORPH, i, Section.MORPH, (o.morph_index for o in morph.offsets), num_morphs)
            if isinstance(morph, GroupMorph) and any(o.morph_index == i for o in morph.offsets):
                yield SelfReferenceError(Section.MORPH, i)
        elif isinstance(morph, (VertexMorph, UVMorph)):
            yield from _dangling(Section.MORPH, i, Section.VERTEX, (o.vertex_index for o in morph.offsets), num_vertices)
            if isinstance(morph, UVMorph):
                yield from _dangling(Section.MORPH, i, Section.ADDITIONAL_UV, (morph.uv_index,), num_uv_channels)
        elif isinstance(morph, BoneMorph):
            yield from _dangling(Section.MORPH, i, Section.BONE, (o.bone_index for o in morph.offsets), num_bones)
        elif isinstance(morph, MaterialMorph):
            yield from _dangling(Section.MORPH, i, Section.MATERIAL, (o.material_index for o in morph.offsets), num_materials, nullable=True)
        elif isinstance(morph, ImpulseMorph):
            yield from _dangling(Section.MORPH, i, Section.RIGID, (o.rigid_index for o in morph.offsets), num_rigids)

    for i, group in enumerate(model.display_groups):
        for item in group.items:
            if item.disp_type == DisplayItem.TYPE_BONE:
                yield from _dangling(Section.DISPLAY, i, Section.BONE, (item.index,), num_bones)
            else:
                yield from _dangling(Section.DISPLAY, i, Section.MORPH, (item.index,), num_morphs)

    for i, rigid in enumerate(model.rigids):
        yield from _dangling(Section.RIGID, i, Section.BONE, (rigid.bone_index,), num_bones, nullable=True)

    for i, joint in enumerate(model.joints):
        yield from _dangling(Section.JOINT, i, Section.RIGID, (joint.src_rigid_index, joint.dst_rigid_index), num_rigids, nullable=True)

    for i, soft in enumerate(model.soft_bodies):
        yield from _dangling(Section.SOFT_BODY, i, Section.MATERIAL, (soft.material_index,), num_materials, nullable=True)
        yield from _dangling(Section.SOFT_BODY, i, Section.RIGID, (a.rigid_index for a in soft.anchors), num_rigids)
        yield from _dangling(Section.SOFT_BODY, i, Section.VERTEX, [a.vertex_index for a in soft.anchors] + soft.pins, num_vertices)

def validate(model: Model, all_violations: bool = False) -> None:
    """
    Check every cross-section index of a loaded model.
    Raises the first DanglingReferenceError, or a ValidationError holding all of them when all_violations is set.
    """
    if not all_violations:
        for err in iter_reference_errors(model):
            raise err
        return

    violations = list(iter_reference_errors(model))
    if violations:
        raise ValidationError(violations)


################################################################################
def parse(data: bytes, all_violations: bool = False) -> Model:
    """
    Parse a complete PMX 2.0/2.1 file held in memory.
    Returns a fully validated Model or raises a PmxError. No partially loaded model is ever returned.
    """
    fs = ReadStream(data)
    header = Header()
    header.load(fs)
    fs.setHeader(header)
    model = Model()
    model.load(fs)
    validate(model, all_violations)
    return model
