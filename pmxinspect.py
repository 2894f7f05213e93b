"""
pmxinspect.py - A script to load PMX models and report their structure.
Version 1.0.0

This script loads PMX 2.0/2.1 model files with pmxparse and reports what they contain.

The main purpose is to check a model exported from DCC tools like Blender, Maya, etc. before using it,
or to find out why a model fails to load in other tools.

- These are reported after loading:
    - Header: PMX version, text encoding, additional UV count and index sizes.
    - Element counts: vertices, faces, textures, materials, bones, morphs, display groups, rigid bodies, joints and soft bodies.
    - Morph kinds: how many Group, Vertex, Bone, UV, Material, Flip and Impulse morphs the model has.
    - Names: duplicate and unnamed elements (allowed by PMX, but confusing for most editors).
    - Empty morphs that have no effect on the model.

- Errors:
    - A model that fails to parse is reported with the error kind and the byte offset where it was detected.
    - Dangling references (e.g. a face using a vertex that does not exist) are reported one by one
      when all violations are requested.

Copyright (c) 2025 Kafuji Sato

LICENCE: GPL-3.0-or-later (https://www.gnu.org/licenses/gpl-3.0.en.html)
"""

import os
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pmxparse

import logging
# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(filename)s : %(levelname)s - %(message)s')


def load(path: str, all_violations: bool = False) -> pmxparse.Model:
    """Read a PMX file and parse it. Raises OSError or pmxparse.PmxError."""
    with open(path, 'rb') as f:
        data = f.read()
    return pmxparse.parse(data, all_violations=all_violations)


def describe_error(err: pmxparse.PmxError) -> str:
    """Human readable description of a parse error, with the byte offset when known."""
    kind = type(err).__name__
    if isinstance(err, pmxparse.ValidationError):
        lines = [f"{kind}: {len(err.violations)} dangling references"]
        lines += [f"  - {v}" for v in err.violations]
        return "\n".join(lines)
    if err.offset is not None:
        return f"{kind} at offset {err.offset} (0x{err.offset:08X}): {err}"
    return f"{kind}: {err}"


def load_pmx_file(path: str, all_violations: bool = False) -> Tuple[Optional[pmxparse.Model], str]:
    """Load a PMX model from the specified path. Returns the model (None on failure) and a message."""
    try:
        model = load(path, all_violations=all_violations)
    except OSError as e:
        logging.error(f"Error reading PMX file '{path}': {e}")
        return None, f"Failed to read '{path}': {e}"
    except pmxparse.PmxError as e:
        msg = describe_error(e)
        logging.error(f"Error loading PMX model from '{path}': {msg}")
        return None, f"Failed to load '{path}': {msg}"
    logging.debug(f"Loaded {model!r}")
    return model, f"Loaded '{path}' successfully."


# Report functions to print model structure and check names and morphs
def summarize(model: pmxparse.Model) -> Dict[str, int]:
    """Element counts per section."""
    return {
        "vertices": len(model.vertices),
        "faces": len(model.faces),
        "textures": len(model.textures),
        "materials": len(model.materials),
        "bones": len(model.bones),
        "morphs": len(model.morphs),
        "display_groups": len(model.display_groups),
        "rigid_bodies": len(model.rigids),
        "joints": len(model.joints),
        "soft_bodies": len(model.soft_bodies),
    }


def morph_type_counts(model: pmxparse.Model) -> Dict[str, int]:
    """Number of morphs per kind, in order of first appearance."""
    counts: Dict[str, int] = {}
    for morph in model.morphs:
        counts[morph.type_name()] = counts.get(morph.type_name(), 0) + 1
    return counts


def format_report(model: pmxparse.Model, name: str = "") -> str:
    """Multi-line text report of the model's header and structure."""
    header = model.header
    lines = []
    if name:
        lines.append(f"File: {name}")
    lines.append(f"Model: {model.name} ({model.name_e})" if model.name_e else f"Model: {model.name}")
    lines.append(f"PMX {header.version:.1f}, {header.encoding.charset}, additional UVs: {header.additional_uvs}")
    lines.append("Index sizes: vertex {}, texture {}, material {}, bone {}, morph {}, rigid {}".format(
        header.vertex_index_size,
        header.texture_index_size,
        header.material_index_size,
        header.bone_index_size,
        header.morph_index_size,
        header.rigid_index_size,
        ))
    for key, count in summarize(model).items():
        lines.append(f"  {key.replace('_', ' ').capitalize()}: {count}")
    kinds = morph_type_counts(model)
    if kinds:
        lines.append("Morph kinds: " + ", ".join(f"{k} {v}" for k, v in kinds.items()))
    return "\n".join(lines)


def post_load_report(model: pmxparse.Model, name: str) -> None:
    """Print a report of the model's structure after loading."""
    counts = summarize(model)
    logging.info(f"📦 {name}: PMX {model.header.version:.1f}, {counts['vertices']} vertices, {counts['faces']} faces, {counts['materials']} materials")
    logging.info(f"🦴 {counts['bones']} bones, 🧬 {counts['morphs']} morphs, 📺 {counts['display_groups']} display groups")
    logging.info(f"🪨 {counts['rigid_bodies']} rigid bodies, 🔗 {counts['joints']} joints, 🧶 {counts['soft_bodies']} soft bodies")
    return


def report_names(model: pmxparse.Model) -> bool:
    """Report duplicate and unnamed elements. Returns True if either is found."""

    def check(label: str, collection: pmxparse.NamedElements) -> bool:
        found = False
        for name in collection.find_duplicate_names():
            logging.warning(f"Duplicate {label} name: '{name}' (only the first one is reachable by name)")
            found = True
        for idx in collection.find_unnamed():
            logging.warning(f"Unnamed {label} at index {idx}")
            found = True
        return found

    ret = False
    ret |= check("bone", model.bones)
    ret |= check("material", model.materials)
    ret |= check("morph", model.morphs)
    ret |= check("display group", model.display_groups)
    ret |= check("rigid body", model.rigids)
    ret |= check("joint", model.joints)
    return ret


def find_empty_morphs(model: pmxparse.Model) -> List[pmxparse.Morph]:
    return [m for m in model.morphs if not m.offsets]


def report_empty_morphs(model: pmxparse.Model) -> None:
    """Report empty morphs in the model."""
    empty_morphs = find_empty_morphs(model)
    if empty_morphs:
        logging.info("FYI: The following morphs are empty and will not have any effect on the model:")
        for morph in empty_morphs:
            logging.info(f"  - {morph.name} ({morph.type_name()}, index: {model.morphs.index(morph)})")
    else:
        logging.debug("No empty morphs found.")


# Main function to load and report PMX model files
def inspect_pmx_files(paths: Sequence[str], all_violations: bool = False,
                      report: Optional[Callable[[str], None]] = None) -> Tuple[bool, str]:
    """
    Load and report each file. Returns a tuple of success status and message.
    When given, report is called with the format_report text of every loaded model.
    """
    if not paths:
        return False, "At least one PMX file must be specified."

    failed = []
    for path in paths:
        logging.info(f"▶️ Inspecting: {path}")
        if not os.path.isfile(path):
            logging.error(f"File not found: '{path}'")
            failed.append(path)
            continue

        model, msg = load_pmx_file(path, all_violations=all_violations)
        if model is None:
            failed.append(path)
            continue

        post_load_report(model, os.path.basename(path))
        if report is not None:
            report(format_report(model, path))
        report_names(model)
        report_empty_morphs(model)

    if failed:
        return False, f"{len(failed)} of {len(paths)} files failed to load: " + ", ".join(failed)
    return True, f"Inspected {len(paths)} files successfully."
