# vips_io.py – pyvips backed face loading and panorama writing for large cube maps
# Loading pattern adapted from Stefan Keim's kubi project (MIT License)
# Source: https://github.com/stefanix/kubi

from pathlib import Path
import logging

import numpy as np
import pyvips

from cubemap import Cubemap
from face_io import REQUIRED_FIELDS, JPEG_SUFFIXES, check_input_folder, check_output_folder, find_face_file

logger = logging.getLogger(__name__)


def _open_square(path):
    img = pyvips.Image.new_from_file(str(path), access="sequential")

    # drop alpha, faces are sampled as plain colour
    if img.hasalpha():
        img = img[:img.bands - 1]

    # grey / 16-bit sources become 8-bit sRGB, like Pillow's convert("RGB")
    img = img.colourspace("srgb")
    if img.format != "uchar":
        img = img.cast("uchar")

    side = min(img.width, img.height)
    if img.width != img.height:
        img = img.crop((img.width - side) // 2, (img.height - side) // 2, side, side)
    return img


def load_cube_folder_vips(folder, face_size: int = None):
    """
    Loads the six faces of <folder> with pyvips.
    face_size: side length of every face; defaults to the smallest face found.

    Supports: .jpg, .png, .tif
    """
    folder = check_input_folder(folder)
    cube = {name: _open_square(find_face_file(folder, name)) for name in REQUIRED_FIELDS}

    if face_size is None:
        face_size = min(img.width for img in cube.values())

    faces = {}
    for name, img in cube.items():
        if img.width != face_size:
            img = img.thumbnail_image(face_size, height=face_size, size="force")
        faces[name] = img.numpy()
        logger.info("Loaded %s face (%d px)", name, face_size)

    return Cubemap.from_mapping(faces)


def write_panorama_vips(image, out_path, quality: int = 85):
    out_path = Path(out_path)
    check_output_folder(out_path)

    eq = pyvips.Image.new_from_array(np.ascontiguousarray(image))

    options = {}
    if out_path.suffix.lower() in JPEG_SUFFIXES:
        options = {"Q": quality, "interlace": True, "optimize_coding": True}

    eq.write_to_file(str(out_path), **options)
    logger.info("Saved panorama: %s", out_path)
    return out_path
