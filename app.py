# Web front end. Run from a source checkout (python app.py or flask --app app run):
# the upload form lives in templates/ next to this file and is not part of a
# regular wheel install.

import logging

from flask import Flask, request, send_file, abort, render_template
from PIL import Image

from cubemap import ValidationError
from face_io import REQUIRED_FIELDS, encode_jpeg, load_cube_uploads

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_mapping(
    MAX_FACE=2048,       # largest face side accepted before downscaling
    JPEG_QUALITY=95,
    RASTER_WORKERS=1,
)
# e.g. CUBE2EQUIRECT_MAX_FACE=4096
app.config.from_prefixed_env("CUBE2EQUIRECT")


@app.route("/", methods=["GET"])
def index():
    return render_template("index.html", fields=REQUIRED_FIELDS)


@app.route("/stitch", methods=["POST"])
def stitch():
    try:
        cubemap = load_cube_uploads(request.files, max_face=app.config["MAX_FACE"])
    except (ValidationError, OSError, Image.DecompressionBombError) as e:
        logger.warning("Rejected upload: %s", e)
        return abort(400, f"Could not load cube faces: {e}")

    pano = cubemap.to_equirectangular(workers=app.config["RASTER_WORKERS"])
    buf = encode_jpeg(pano, quality=app.config["JPEG_QUALITY"])

    return send_file(
        buf,
        mimetype="image/jpeg",
        as_attachment=True,
        download_name="panorama.jpg"
    )


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
