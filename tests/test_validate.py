import pytest

import pmxparse
from pmxbuilder import PmxBuilder, minimal


def dangling(builder, **kwargs):
    with pytest.raises(pmxparse.DanglingReferenceError) as e:
        pmxparse.parse(builder.build(), **kwargs)
    return e.value


def test_face_referencing_missing_vertex():
    b = PmxBuilder()
    b.add_vertex(b.bdef1(0))
    b.add_face(0, 1, 0)
    b.add_bone('root')
    err = dangling(b)
    assert err.section == 'face'
    assert err.record_index == 0
    assert err.target_section == 'vertex'
    assert err.value == 1


def test_vertex_bone_off_by_one():
    b = PmxBuilder()
    b.add_vertex(b.bdef2(0, 1, 0.5))
    b.add_bone('root')
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('vertex', 'bone', 1)


def test_vertex_bone_sentinel_allowed():
    b = PmxBuilder()
    b.add_vertex(b.bdef4((0, -1, -1, -1), (1.0, 0.0, 0.0, 0.0)))
    b.add_bone('root')
    assert pmxparse.parse(b.build()).vertices[0].weight.bone_indices == (0, -1, -1, -1)


def test_material_texture_off_by_one():
    b = minimal()
    b.add_texture('a.png')
    b.add_material(texture=1)
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('material', 'texture', 1)


def test_material_toon_texture_off_by_one():
    b = minimal()
    b.add_material(toon_texture=0)
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('material', 'texture', 0)


def test_shared_toon_out_of_range():
    b = minimal()
    b.add_material(shared_toon=10)
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('material', 'internal_toon', 10)


def test_material_faces_beyond_face_list():
    b = minimal()
    b.add_material('a', vertex_count=3)
    b.add_material('b', vertex_count=3)
    err = dangling(b)
    assert (err.section, err.record_index, err.target_section, err.value) == ('material', 1, 'face', 1)


def test_material_face_runs_within_face_list():
    b = minimal()
    b.add_face(0, 0, 0)
    b.add_material('a', vertex_count=3)
    b.add_material('b', vertex_count=3)
    model = pmxparse.parse(b.build())
    assert model.material_faces(1) == [model.faces[1]]


def test_bone_parent_off_by_one():
    b = minimal()
    b.add_bone('child', parent=2)
    err = dangling(b)
    assert (err.section, err.record_index, err.target_section, err.value) == ('bone', 1, 'bone', 2)


def test_bone_tail_off_by_one():
    b = minimal()
    b.add_bone('child', tail_bone=2)
    assert dangling(b).value == 2


def test_ik_target_sentinel_rejected():
    b = minimal()
    b.add_bone('ik', ik=(-1, 10, 1.0, []))
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('bone', 'bone', -1)


def test_ik_link_off_by_one():
    b = minimal()
    b.add_bone('ik', ik=(0, 10, 1.0, [(2, None)]))
    assert dangling(b).value == 2


def test_group_morph_self_reference():
    b = minimal()
    b.add_morph('a', kind=1)
    b.add_morph('self', kind=0, offsets=[b.group_offset(0), b.group_offset(1)])
    with pytest.raises(pmxparse.SelfReferenceError) as e:
        pmxparse.parse(b.build())
    assert isinstance(e.value, pmxparse.DanglingReferenceError)
    assert e.value.section == 'morph'
    assert e.value.record_index == 1


def test_group_morph_forward_reference():
    b = minimal()
    b.add_morph('group', kind=0, offsets=[b.group_offset(1)])
    b.add_morph('a', kind=1)
    assert pmxparse.parse(b.build()).morphs['group'].offsets[0].morph_index == 1


def test_group_morph_off_by_one():
    b = minimal()
    b.add_morph('group', kind=0, offsets=[b.group_offset(1)])
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('morph', 'morph', 1)


def test_vertex_morph_off_by_one():
    b = minimal()
    b.add_morph('m', kind=1, offsets=[b.vertex_offset(1)])
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('morph', 'vertex', 1)


def test_bone_morph_sentinel_rejected():
    b = minimal()
    b.add_morph('m', kind=2, offsets=[b.bone_offset(-1)])
    assert dangling(b).target_section == 'bone'


def test_material_morph_all_materials():
    b = minimal()
    b.add_morph('m', kind=8, offsets=[b.material_offset(-1)])
    assert pmxparse.parse(b.build()).morphs[0].offsets[0].material_index == -1


def test_material_morph_off_by_one():
    b = minimal()
    b.add_morph('m', kind=8, offsets=[b.material_offset(0)])
    assert dangling(b).target_section == 'material'


def test_uv_morph_channel_without_additional_uv():
    b = minimal(additional_uvs=1)
    b.add_morph('uv1', kind=4, offsets=[b.uv_offset(0)])
    b.add_morph('uv2', kind=5, offsets=[b.uv_offset(0)])
    err = dangling(b)
    assert (err.record_index, err.target_section, err.value) == (1, 'additional_uv', 2)


def test_impulse_morph_off_by_one():
    b = minimal(version=2.1)
    b.add_morph('m', kind=10, offsets=[b.impulse_offset(0)])
    assert dangling(b).target_section == 'rigid_body'


def test_display_item_off_by_one():
    b = minimal()
    b.add_display('Root', [(0, 0), (1, 0)])
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('display_frame', 'morph', 0)


def test_rigid_bone_sentinel_allowed():
    b = minimal()
    b.add_rigid(bone=-1)
    b.add_rigid(bone=1)
    err = dangling(b)
    assert (err.section, err.record_index, err.value) == ('rigid_body', 1, 1)


def test_joint_rigid_off_by_one():
    b = minimal()
    b.add_rigid()
    b.add_joint(a=0, b=-1)
    b.add_joint(a=0, b=1)
    err = dangling(b)
    assert (err.section, err.record_index, err.target_section, err.value) == ('joint', 1, 'rigid_body', 1)


def test_soft_body_pin_off_by_one():
    b = minimal(version=2.1)
    b.add_soft_body(pins=[1])
    err = dangling(b)
    assert (err.section, err.target_section, err.value) == ('soft_body', 'vertex', 1)


def test_soft_body_anchor_rigid_off_by_one():
    b = minimal(version=2.1)
    b.add_soft_body(anchors=[(0, 0, 0)])
    assert dangling(b).target_section == 'rigid_body'


def test_first_violation_raised_by_default():
    b = PmxBuilder()
    b.add_vertex(b.bdef1(3))
    b.add_face(0, 0, 5)
    b.add_bone('root')
    err = dangling(b)
    assert err.section == 'vertex'


def test_all_violations_collected():
    b = PmxBuilder()
    b.add_vertex(b.bdef1(3))
    b.add_face(0, 0, 5)
    b.add_bone('root')
    b.add_display('Root', [(0, 1)])
    with pytest.raises(pmxparse.ValidationError) as e:
        pmxparse.parse(b.build(), all_violations=True)
    violations = e.value.violations
    assert [(v.section, v.value) for v in violations] == [('vertex', 3), ('face', 5), ('display_frame', 1)]


def test_all_violations_on_valid_model(full_bytes):
    assert pmxparse.parse(full_bytes, all_violations=True) == pmxparse.parse(full_bytes)


def test_validate_loaded_model(full_bytes):
    model = pmxparse.parse(full_bytes)
    pmxparse.validate(model)
    model.faces.append(pmxparse.Face((0, 1, 99)))
    errors = list(pmxparse.iter_reference_errors(model))
    assert [(e.section, e.record_index, e.value) for e in errors] == [('face', 2, 99)]
