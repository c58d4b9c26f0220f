"""
test_face_io.py — Pillow / OpenCV face loading and panorama writing
"""

import os

import numpy as np
import pytest
from PIL import Image

from cubemap import Cubemap, ValidationError
from face_io import (
    crop_to_square,
    encode_jpeg,
    find_face_file,
    load_cube_folder,
    load_cube_uploads,
    load_face,
    save_panorama,
    soften,
)
from conftest import COLORS, png_bytes, solid_face


class TestLoadFolder:

    def test_loads_six_faces(self, face_folder):
        cubemap = load_cube_folder(face_folder)
        assert isinstance(cubemap, Cubemap)
        assert cubemap.size == 16
        for name, color in COLORS.items():
            assert tuple(cubemap.face(name)[3, 5]) == color

    def test_down_file_name(self, face_folder):
        (face_folder / 'bottom.png').rename(face_folder / 'down.png')
        assert find_face_file(face_folder, 'bottom').name == 'down.png'
        assert load_cube_folder(face_folder).size == 16

    def test_jpeg_extension(self, face_folder):
        (face_folder / 'top.png').unlink()
        Image.fromarray(solid_face(16, COLORS['top'])).save(face_folder / 'top.jpg')
        assert find_face_file(face_folder, 'top').suffix == '.jpg'

    def test_missing_face_file(self, face_folder):
        (face_folder / 'left.png').unlink()
        with pytest.raises(FileNotFoundError, match="left"):
            load_cube_folder(face_folder)

    def test_missing_folder(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_cube_folder(tmp_path / 'nowhere')

    def test_unequal_faces(self, face_folder):
        Image.fromarray(solid_face(12, COLORS['back'])).save(face_folder / 'back.png')
        with pytest.raises(ValidationError, match="mismatch"):
            load_cube_folder(face_folder)

    def test_resize_on_load(self, face_folder):
        Image.fromarray(solid_face(12, COLORS['back'])).save(face_folder / 'back.png')
        assert load_cube_folder(face_folder, face_size=8).size == 8

    def test_unreadable_image(self, face_folder):
        (face_folder / 'front.png').write_bytes(b'not an image')
        with pytest.raises(OSError):
            load_cube_folder(face_folder)


class TestLoadFace:

    def test_crop_to_square(self):
        img = Image.new('RGB', (30, 20))
        assert crop_to_square(img).size == (20, 20)
        assert crop_to_square(Image.new('RGB', (5, 9))).size == (5, 5)

    def test_rgba_becomes_rgb(self, tmp_path):
        path = tmp_path / 'face.png'
        Image.new('RGBA', (10, 10), (1, 2, 3, 4)).save(path)
        face = load_face(path)
        assert face.shape == (10, 10, 3)
        assert tuple(face[0, 0]) == (1, 2, 3)

    def test_crop_and_resize(self, tmp_path):
        path = tmp_path / 'face.png'
        Image.new('RGB', (40, 30)).save(path)
        assert load_face(path, face_size=10, crop=True).shape == (10, 10, 3)


class TestLoadUploads:

    def _files(self, size=16):
        return {name: png_bytes(solid_face(size, color)) for name, color in COLORS.items()}

    def test_loads(self):
        cubemap = load_cube_uploads(self._files())
        assert cubemap.size == 16
        assert tuple(cubemap.face('front')[0, 0]) == COLORS['front']

    def test_missing_field(self):
        files = self._files()
        del files['top']
        with pytest.raises(ValidationError, match="Missing field: top"):
            load_cube_uploads(files)

    def test_down_field(self):
        files = self._files()
        files['down'] = files.pop('bottom')
        assert load_cube_uploads(files).size == 16

    def test_smallest_face_wins(self):
        files = self._files()
        files['left'] = png_bytes(np.zeros((12, 20, 3), dtype=np.uint8))
        assert load_cube_uploads(files).size == 12

    def test_max_face(self):
        assert load_cube_uploads(self._files(), max_face=8).size == 8


class TestSavePanorama:

    def test_png_exact(self, tmp_path):
        pano = np.random.default_rng(1).integers(0, 255, (8, 16, 3), dtype=np.uint8)
        path = save_panorama(pano, tmp_path / 'pano.png', blur=False)
        assert np.array_equal(np.array(Image.open(path)), pano)

    def test_jpeg(self, tmp_path):
        pano = np.full((20, 40, 3), 128, dtype=np.uint8)
        path = save_panorama(pano, tmp_path / 'pano.jpg', quality=90)
        with Image.open(path) as img:
            assert img.format == 'JPEG'
            assert img.size == (40, 20)

    def test_empty_image(self, tmp_path):
        with pytest.raises(ValueError, match="empty"):
            save_panorama(np.zeros((0, 0, 3), dtype=np.uint8), tmp_path / 'pano.jpg')

    def test_missing_folder(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            save_panorama(solid_face(4, (0, 0, 0)), tmp_path / 'missing' / 'pano.jpg')

    @pytest.mark.skipif(os.name != 'posix' or os.geteuid() == 0, reason="needs POSIX permissions as non-root")
    def test_read_only_folder(self, tmp_path):
        folder = tmp_path / 'locked'
        folder.mkdir()
        folder.chmod(0o500)
        try:
            with pytest.raises(PermissionError):
                save_panorama(solid_face(4, (0, 0, 0)), folder / 'pano.jpg')
        finally:
            folder.chmod(0o700)


class TestSoften:

    def test_solid_unchanged(self):
        img = solid_face(10, (10, 200, 30))
        assert np.array_equal(soften(img), img)

    def test_edges_smoothed(self):
        img = np.zeros((10, 10, 3), dtype=np.uint8)
        img[:, 5:] = 255
        out = soften(img)
        assert out.shape == img.shape
        assert 0 < out[5, 4, 0] < 255
        assert 0 < out[5, 5, 0] < 255


def test_encode_jpeg():
    buf = encode_jpeg(solid_face(8, (255, 0, 0)))
    with Image.open(buf) as img:
        assert img.format == 'JPEG'
        assert img.size == (8, 8)
