# face_io.py – reading cube faces and writing panoramas with Pillow / OpenCV

import logging
import os
from io import BytesIO
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from cubemap import Cubemap, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["front", "back", "left", "right", "top", "bottom"]
FIELD_ALIASES = {"bottom": ["down"]}
SUPPORTED_EXTENSIONS = [".jpg", ".jpeg", ".png", ".tif", ".tiff"]
JPEG_SUFFIXES = {".jpg", ".jpeg"}


def crop_to_square(pil_img):
    """Centre crop to a square on the shorter side."""
    w, h = pil_img.size
    if w == h:
        return pil_img
    base = min(w, h)
    left = (w - base) // 2
    top = (h - base) // 2
    return pil_img.crop((left, top, left + base, top + base))


def load_face(source, face_size=None, crop=False):
    """Open one face (path or file object) as an RGB uint8 array."""
    with Image.open(source) as img:
        pil_img = img.convert("RGB")

    if crop:
        pil_img = crop_to_square(pil_img)
    if face_size is not None and pil_img.size != (face_size, face_size):
        pil_img = pil_img.resize((face_size, face_size))

    return np.array(pil_img, dtype=np.uint8)


def find_face_file(folder, name):
    folder = Path(folder)
    for stem in [name] + FIELD_ALIASES.get(name, []):
        for ext in SUPPORTED_EXTENSIONS:
            candidate = folder / f"{stem}{ext}"
            if candidate.is_file():
                return candidate
    raise FileNotFoundError(f"Missing image for {name} face in {folder}")


def check_input_folder(folder):
    folder = Path(folder)
    if not folder.is_dir():
        raise FileNotFoundError(f"Missing or invalid folder: {folder}")
    if not os.access(folder, os.R_OK | os.X_OK):
        raise PermissionError(f"Folder is not readable: {folder}")
    return folder


def check_output_folder(path):
    folder = Path(path).parent
    if not folder.is_dir():
        raise FileNotFoundError(f"Destination folder does not exist: {folder}")
    if not os.access(folder, os.W_OK):
        raise PermissionError(f"Destination folder is not writable: {folder}")
    return folder


def load_cube_folder(folder, face_size=None, crop=False):
    """
    Loads <folder>/{front,back,left,right,top,bottom}.<ext> into a Cubemap.

    Without ``face_size`` and ``crop`` the images are used as they are, so
    non-square or unequal faces are reported as ValidationError.
    """
    folder = check_input_folder(folder)

    faces = {}
    for name in REQUIRED_FIELDS:
        path = find_face_file(folder, name)
        faces[name] = load_face(path, face_size=face_size, crop=crop)
        logger.info("Loaded %s face: %s", name, path)

    return Cubemap.from_mapping(faces)


def load_cube_uploads(files, max_face=2048):
    """
    1) Reads the six uploaded images (keys REQUIRED_FIELDS, 'down' accepted for 'bottom').
    2) Crops each one to a square on its shorter side.
    3) Uses the smallest face as the common size, capped at max_face.
    4) Resizes every face to that size and returns a Cubemap.
    """
    pil_faces = {}
    for field in REQUIRED_FIELDS:
        storage = files.get(field)
        for alias in FIELD_ALIASES.get(field, []):
            if not storage:
                storage = files.get(alias)
        if not storage:
            raise ValidationError(f"Missing field: {field}")

        with Image.open(storage) as img:
            pil_faces[field] = crop_to_square(img.convert("RGB"))

    face_size = min(min(img.size[0] for img in pil_faces.values()), max_face)

    faces = {}
    for field, pil_img in pil_faces.items():
        if pil_img.size != (face_size, face_size):
            pil_img = pil_img.resize((face_size, face_size))
        faces[field] = np.array(pil_img, dtype=np.uint8)

    logger.debug("Loaded %d uploaded faces at %d px", len(faces), face_size)
    return Cubemap.from_mapping(faces)


def soften(image):
    """3x3 Gaussian blur, hides the nearest-neighbour stair steps at face seams."""
    return cv2.GaussianBlur(np.ascontiguousarray(image), (3, 3), 0)


def save_panorama(image, path, quality=85, blur=True):
    image = np.asarray(image)
    if image.size == 0:
        raise ValueError("The image is empty. Unable to save the image.")

    path = Path(path)
    check_output_folder(path)

    if blur:
        image = soften(image)

    options = {}
    if path.suffix.lower() in JPEG_SUFFIXES:
        options = {"quality": quality, "progressive": True, "optimize": True}

    Image.fromarray(image).save(path, **options)
    logger.info("Saved panorama: %s", path)
    return path


def encode_jpeg(image, quality=95):
    buf = BytesIO()
    Image.fromarray(np.asarray(image)).save(buf, format="JPEG", quality=quality)
    buf.seek(0)
    return buf
