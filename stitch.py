"""
Command line stitching of a cube map folder into an equirectangular panorama.

The folder must contain front, back, left, right, top and bottom images
(.jpg, .jpeg, .png, .tif or .tiff; 'down' is accepted for 'bottom').
"""

import argparse
import logging
import sys
from pathlib import Path

from PIL import Image

import face_io

logger = logging.getLogger(__name__)


class ConsoleProgress:
    """Progress callback that redraws a percentage line on a stream."""

    def __init__(self, stream=None, label="Rasterizing"):
        self.stream = stream if stream is not None else sys.stderr
        self.label = label

    def __call__(self, done, total):
        percent = 100 * done // total if total else 100
        self.stream.write(f"\r{self.label}: {percent:3d}%")
        if done >= total:
            self.stream.write("\n")
        self.stream.flush()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="cube2equirect",
        description="Reproject six cube map faces into a 4:2 equirectangular panorama.",
    )
    parser.add_argument("folder", type=Path, help="Folder holding the six face images.")
    parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Output image. Defaults to equirectangular.jpg inside the input folder.",
    )
    parser.add_argument(
        "--backend",
        choices=["pil", "vips"],
        default="pil",
        help="Image I/O library: Pillow (default) or pyvips for very large faces.",
    )
    parser.add_argument("--face-size", type=int, help="Resize every face to this many pixels.")
    parser.add_argument("--crop", action="store_true", help="Centre crop non-square faces (Pillow backend).")
    parser.add_argument("--workers", type=int, default=1, help="Rasterizer threads (default: 1).")
    parser.add_argument("--quality", type=int, default=85, help="JPEG quality 1-100 (default: 85).")
    parser.add_argument("--no-blur", action="store_true", help="Skip the 3x3 Gaussian post-filter.")
    parser.add_argument("--quiet", action="store_true", help="No progress output.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    output = args.output or args.folder / "equirectangular.jpg"
    progress = None if args.quiet else ConsoleProgress()

    try:
        if args.backend == "vips":
            import vips_io

            cubemap = vips_io.load_cube_folder_vips(args.folder, face_size=args.face_size)
        else:
            cubemap = face_io.load_cube_folder(args.folder, face_size=args.face_size, crop=args.crop)

        logger.info("Converting %d px cube map", cubemap.size)
        pano = cubemap.to_equirectangular(workers=args.workers, progress=progress)

        if args.backend == "vips":
            if not args.no_blur:
                pano = face_io.soften(pano)
            vips_io.write_panorama_vips(pano, output, quality=args.quality)
        else:
            face_io.save_panorama(pano, output, quality=args.quality, blur=not args.no_blur)
    except (ValueError, OSError, Image.DecompressionBombError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if not args.quiet:
        print(f"Wrote {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
