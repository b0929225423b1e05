from .files import MIME_TYPES, register_mime_types, build_static_app
from .gzip_sniffer import GzipSniffer, GZIP_MAGIC, is_sniffed_path

__all__ = [
    "MIME_TYPES",
    "register_mime_types",
    "build_static_app",
    "GzipSniffer",
    "GZIP_MAGIC",
    "is_sniffed_path",
]
