"""
conftest.py — Shared fixtures for the cube map conversion tests
"""

import io
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from PIL import Image

from cubemap import Cubemap, FACE_DIRECTIONS


COLORS = {
    'front': (255, 0, 0),
    'back': (0, 0, 255),
    'left': (0, 255, 0),
    'right': (255, 255, 0),
    'top': (255, 255, 255),
    'bottom': (0, 0, 0),
}


def solid_face(size, color):
    return np.full((size, size, 3), color, dtype=np.uint8)


def png_bytes(array):
    buf = io.BytesIO()
    Image.fromarray(array).save(buf, format='PNG')
    buf.seek(0)
    return buf


@pytest.fixture
def solid_cubemap():
    """S=100 cube, one distinct solid colour per face."""
    return Cubemap.from_mapping({name: solid_face(100, color) for name, color in COLORS.items()})


@pytest.fixture
def textured_cubemap():
    """S=64 cube: channel 0 tags the face, channels 1/2 hold the column/row index."""
    size = 64
    rows, cols = np.mgrid[0:size, 0:size]
    faces = {}
    for name, face in FACE_DIRECTIONS.items():
        img = np.empty((size, size, 3), dtype=np.uint8)
        img[..., 0] = 40 * int(face)
        img[..., 1] = cols
        img[..., 2] = rows
        faces[name] = img
    return Cubemap.from_mapping(faces)


@pytest.fixture
def face_folder(tmp_path):
    """Folder of six 16 px solid-colour PNG faces."""
    folder = tmp_path / 'faces'
    folder.mkdir()
    for name, color in COLORS.items():
        Image.fromarray(solid_face(16, color)).save(folder / f'{name}.png')
    return folder
