"""
Object storage for product images.

Files land under `<root>/products/<epoch_ms>_<filename>` and are served back
by the app at `/files/<path>`.
"""
import logging
import os
import time
from pathlib import Path

log = logging.getLogger(__name__)


class ImageStorage:
    def __init__(self, root: str, base_url: str = ""):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def object_path(self, filename: str) -> str:
        name = os.path.basename(filename or "").replace(" ", "_") or "upload"
        return f"products/{int(time.time() * 1000)}_{name}"

    def upload(self, filename: str, data: bytes) -> str:
        """Store `data` and return the URL it can be fetched from."""
        path = self.object_path(filename)
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        log.info("Stored %s (%d bytes)", path, len(data))
        return self.url_for(path)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/files/{path}"

    def resolve(self, path: str) -> Path:
        """Map a public path back to a file, refusing anything outside the root."""
        root = self.root.resolve()
        target = (root / path).resolve()
        if root not in target.parents or not target.is_file():
            raise FileNotFoundError(path)
        return target
