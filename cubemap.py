# cubemap.py – cube map to equirectangular reprojection
# Face selection and per-face masks follow the approach of Stefan Keim's kubi
# (https://github.com/stefanix/kubi, MIT License), reworked for nearest-neighbour
# sampling on NumPy arrays with a fixed, Y-up axis convention.
#
# Axis convention (theta = longitude, phi = colatitude):
#     x = sin(phi) * cos(theta)
#     y = cos(phi)                 (up)
#     z = sin(phi) * sin(theta)
#
#     theta = 0     -> +X  back
#     theta = pi/2  -> +Z  left
#     theta = pi    -> -X  front   (panorama centre)
#     theta = 3pi/2 -> -Z  right
#     phi = 0 / pi  -> +Y top / -Y bottom

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from enum import IntEnum

import numpy as np

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """The supplied faces cannot form a cube map."""


class InternalInvariantViolation(RuntimeError):
    """A direction did not resolve to exactly one cube face."""


class CubeFace(IntEnum):
    POSITIVE_X = 0
    NEGATIVE_X = 1
    POSITIVE_Y = 2
    NEGATIVE_Y = 3
    POSITIVE_Z = 4
    NEGATIVE_Z = 5


FACE_DIRECTIONS = {
    'back': CubeFace.POSITIVE_X,
    'front': CubeFace.NEGATIVE_X,
    'top': CubeFace.POSITIVE_Y,
    'bottom': CubeFace.NEGATIVE_Y,
    'left': CubeFace.POSITIVE_Z,
    'right': CubeFace.NEGATIVE_Z,
}
FACE_NAMES = {face: name for name, face in FACE_DIRECTIONS.items()}
FACE_ALIASES = {'down': 'bottom'}

# face: (major axis, u axis, u sign, v axis, v sign), axes indexed x=0, y=1, z=2.
# u runs left to right and v top to bottom in the face image as seen from the
# centre of the cube.
_FACE_AXES = {
    CubeFace.POSITIVE_X: (0, 2, 1.0, 1, -1.0),
    CubeFace.NEGATIVE_X: (0, 2, -1.0, 1, -1.0),
    CubeFace.POSITIVE_Y: (1, 2, -1.0, 0, -1.0),
    CubeFace.NEGATIVE_Y: (1, 2, -1.0, 0, 1.0),
    CubeFace.POSITIVE_Z: (2, 0, -1.0, 1, -1.0),
    CubeFace.NEGATIVE_Z: (2, 0, 1.0, 1, -1.0),
}
if set(_FACE_AXES) != set(CubeFace):
    raise InternalInvariantViolation("face axis table does not cover every cube face")


def resolve_face(key):
    """Map a face name ('front', 'down', ...) or CubeFace to a CubeFace."""
    if isinstance(key, CubeFace):
        return key
    if isinstance(key, str):
        name = key.strip().lower()
        name = FACE_ALIASES.get(name, name)
        if name in FACE_DIRECTIONS:
            return FACE_DIRECTIONS[name]
    raise ValidationError(f"Unknown cube face: {key!r}")


def _stack_faces(faces):
    """Validate six face images keyed by CubeFace and stack them in CubeFace order."""
    reference = None
    for face in CubeFace:
        image = np.asarray(faces[face])
        label = FACE_NAMES[face]

        if image.dtype.kind not in 'biuf':
            raise ValidationError(f"{label} face is not a numeric image (dtype {image.dtype})")
        if image.ndim not in (2, 3):
            raise ValidationError(f"{label} face must be 2-D or 3-D, got shape {image.shape}")
        if image.size == 0:
            raise ValidationError(f"{label} face is empty (shape {image.shape})")

        height, width = image.shape[:2]
        if height != width:
            raise ValidationError(f"{label} face is not square: {width}x{height}")

        if reference is None:
            reference = image
        elif image.shape[:2] != reference.shape[:2]:
            raise ValidationError(
                f"Face size mismatch: {label} is {width}x{height}, "
                f"expected {reference.shape[1]}x{reference.shape[0]}"
            )
        elif image.shape != reference.shape:
            raise ValidationError(f"Channel count mismatch on {label} face: {image.shape} vs {reference.shape}")
        elif image.dtype != reference.dtype:
            raise ValidationError(f"Colour depth mismatch on {label} face: {image.dtype} vs {reference.dtype}")

    stack = np.stack([np.asarray(faces[face]) for face in CubeFace])
    stack.flags.writeable = False
    return stack


class Cubemap:
    """Six square faces of identical size, addressed by direction."""

    def __init__(self, right, left, top, bottom, front, back):
        self._faces = _stack_faces({
            CubeFace.NEGATIVE_Z: right,
            CubeFace.POSITIVE_Z: left,
            CubeFace.POSITIVE_Y: top,
            CubeFace.NEGATIVE_Y: bottom,
            CubeFace.NEGATIVE_X: front,
            CubeFace.POSITIVE_X: back,
        })

    @classmethod
    def from_mapping(cls, faces):
        """Build from a mapping keyed by face name or CubeFace."""
        resolved = {}
        for key, image in faces.items():
            face = resolve_face(key)
            if face in resolved:
                raise ValidationError(f"{FACE_NAMES[face]} face supplied more than once")
            resolved[face] = image

        missing = [FACE_NAMES[face] for face in CubeFace if face not in resolved]
        if missing:
            raise ValidationError(f"Expected 6 cube faces, missing: {', '.join(missing)}")

        return cls(**{FACE_NAMES[face]: image for face, image in resolved.items()})

    @property
    def size(self):
        return self._faces.shape[1]

    @property
    def channels(self):
        return 1 if self._faces.ndim == 3 else self._faces.shape[3]

    @property
    def dtype(self):
        return self._faces.dtype

    def face(self, key):
        return self._faces[resolve_face(key)]

    def to_equirectangular(self, width=None, height=None, workers=1, chunk_rows=None, progress=None):
        """
        Render the equirectangular panorama (default 4*size x 2*size).

        Rows are split into bands of ``chunk_rows`` that are rendered
        independently, on a thread pool when ``workers > 1``; each band writes
        only its own rows, so the result does not depend on either setting.
        ``progress(rows_done, rows_total)`` is called from the calling thread
        after every band.
        """
        size = self.size
        width = 4 * size if width is None else int(width)
        height = 2 * size if height is None else int(height)
        if width < 2 or height < 2:
            raise ValidationError(f"Panorama must be at least 2x2 pixels, got {width}x{height}")
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if chunk_rows is None:
            chunk_rows = 256 if size >= 2048 else 128
        if chunk_rows < 1:
            raise ValueError(f"chunk_rows must be >= 1, got {chunk_rows}")

        # Trigonometry once for the whole image; bands only multiply and divide.
        theta, _ = equirect_angles(0, np.arange(width), width, height)
        _, phi = equirect_angles(np.arange(height), 0, width, height)
        sin_theta, cos_theta = np.sin(theta), np.cos(theta)
        sin_phi, cos_phi = np.sin(phi)[:, np.newaxis], np.cos(phi)[:, np.newaxis]

        out = np.empty((height, width) + self._faces.shape[3:], dtype=self.dtype)
        bands = [(y0, min(height, y0 + chunk_rows)) for y0 in range(0, height, chunk_rows)]

        def render(band):
            y0, y1 = band
            x, y, z = _directions(sin_phi[y0:y1], cos_phi[y0:y1], sin_theta, cos_theta)
            faces, px, py = project_directions(x, y, z, size)
            out[y0:y1] = self._faces[faces, py, px]
            return y1 - y0

        logger.debug(
            "Rasterizing %dx%d panorama from %d px faces (%d bands, %d workers)",
            width, height, size, len(bands), workers,
        )
        begin = time.perf_counter()

        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                _report(executor.map(render, bands), height, progress)
        else:
            _report(map(render, bands), height, progress)

        logger.info("Equirectangular conversion took %.3f s", time.perf_counter() - begin)
        return out


def _report(finished_rows, total, progress):
    done = 0
    for rows in finished_rows:
        done += rows
        if progress is not None:
            progress(done, total)


def cube_to_equirectangular(faces, **kwargs):
    """Convert a Cubemap, or a mapping of six face images, to a panorama array."""
    if not isinstance(faces, Cubemap):
        faces = Cubemap.from_mapping(faces)
    return faces.to_equirectangular(**kwargs)


def equirect_angles(i, j, width, height):
    """Longitude theta in [0, 2pi] and colatitude phi in [0, pi] of pixel row i, column j."""
    if width < 2 or height < 2:
        raise ValidationError(f"Panorama must be at least 2x2 pixels, got {width}x{height}")
    theta = np.asarray(j, dtype=np.float64) / (width - 1) * (2 * math.pi)
    phi = np.asarray(i, dtype=np.float64) / (height - 1) * math.pi
    return theta, phi


def _directions(sin_phi, cos_phi, sin_theta, cos_theta):
    return np.broadcast_arrays(sin_phi * cos_theta, cos_phi, sin_phi * sin_theta)


def spherical_to_cartesian(theta, phi):
    theta = np.asarray(theta, dtype=np.float64)
    phi = np.asarray(phi, dtype=np.float64)
    return _directions(np.sin(phi), np.cos(phi), np.sin(theta), np.cos(theta))


def select_faces(x, y, z):
    """
    Cube face hit by each direction: the axis with the largest magnitude wins,
    ties go to Y, then X, then Z. Returns int8 CubeFace values.
    """
    x, y, z = np.broadcast_arrays(
        np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64), np.asarray(z, dtype=np.float64)
    )
    abs_x, abs_y, abs_z = np.abs(x), np.abs(y), np.abs(z)

    major = np.maximum(np.maximum(abs_x, abs_y), abs_z)
    valid = np.isfinite(major) & (major > 0)

    is_y = valid & (abs_y >= abs_x) & (abs_y >= abs_z)
    is_x = valid & ~is_y & (abs_x >= abs_z)
    is_z = valid & ~is_y & ~is_x

    faces = np.where(
        is_y, np.where(y >= 0, CubeFace.POSITIVE_Y, CubeFace.NEGATIVE_Y),
        np.where(
            is_x, np.where(x >= 0, CubeFace.POSITIVE_X, CubeFace.NEGATIVE_X),
            np.where(is_z, np.where(z >= 0, CubeFace.POSITIVE_Z, CubeFace.NEGATIVE_Z), -1),
        ),
    ).astype(np.int8)

    unresolved = np.count_nonzero(faces < 0)
    if unresolved:
        raise InternalInvariantViolation(f"{unresolved} direction(s) did not resolve to a cube face")
    return faces


def face_uv(faces, x, y, z):
    """Normalized in-face coordinates (u, v) in [-1, 1] for directions already assigned to faces."""
    faces = np.asarray(faces)
    x, y, z = np.broadcast_arrays(
        np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64), np.asarray(z, dtype=np.float64)
    )
    if faces.shape != x.shape:
        raise ValueError(f"faces shape {faces.shape} does not match directions {x.shape}")
    if np.any((faces < 0) | (faces >= len(CubeFace))):
        raise InternalInvariantViolation("face index outside the six cube faces")

    axes = (x, y, z)
    u = np.empty(x.shape, dtype=np.float64)
    v = np.empty(x.shape, dtype=np.float64)

    for face in CubeFace:
        mask = faces == face
        if not np.any(mask):
            continue
        major, u_axis, u_sign, v_axis, v_sign = _FACE_AXES[face]
        scale = np.abs(axes[major][mask])
        u[mask] = u_sign * axes[u_axis][mask] / scale
        v[mask] = v_sign * axes[v_axis][mask] / scale

    return u, v


def texel_coordinates(coord, size):
    """Nearest pixel index for normalized coordinates, clamped into [0, size - 1]."""
    pixel = np.floor((np.asarray(coord, dtype=np.float64) + 1) / 2 * (size - 1) + 0.5)
    return np.clip(pixel, 0, size - 1).astype(np.intp)


def project_directions(x, y, z, size):
    """Face index and clamped (x, y) texel of each direction on a cube of ``size`` px faces."""
    faces = select_faces(x, y, z)
    u, v = face_uv(faces, x, y, z)
    return faces, texel_coordinates(u, size), texel_coordinates(v, size)


def project_to_faces(theta, phi, size):
    x, y, z = spherical_to_cartesian(theta, phi)
    return project_directions(x, y, z, size)
