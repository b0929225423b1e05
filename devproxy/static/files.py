import logging
import mimetypes

from starlette.staticfiles import StaticFiles
from starlette.types import ASGIApp

from devproxy.static.gzip_sniffer import GzipSniffer

logger = logging.getLogger("uvicorn.error")

# Content types for 3D tiles, glTF and shader assets that the platform
# mimetypes table gets wrong or does not know.
MIME_TYPES = {
    "application/json": ["mcj", "czml", "json", "geojson", "topojson"],
    "application/wasm": ["wasm"],
    "image/crn": ["crn"],
    "image/ktx": ["ktx"],
    "model/gltf+json": ["gltf"],
    "model/gltf-binary": ["bgltf", "glb"],
    "application/octet-stream": ["m3d", "b3dm", "pnts", "i3dm", "cmpt", "geom", "vctr"],
    "text/plain": ["glsl"],
}


def register_mime_types() -> None:
    """Register ``MIME_TYPES`` with ``mimetypes``, which ``FileResponse`` consults."""
    for media_type, extensions in MIME_TYPES.items():
        for ext in extensions:
            mimetypes.add_type(media_type, f".{ext}")


def build_static_app(directory: str) -> ASGIApp:
    """Serve ``directory``, sniffing pre-compressed tiles before each file is sent."""
    register_mime_types()
    logger.info(f"Serving static files from {directory}")
    return GzipSniffer(StaticFiles(directory=directory, html=True), directory)
