"""Image normalization: any card source -> baseline JPEG bytes."""
from __future__ import annotations

import base64
from concurrent.futures import ThreadPoolExecutor, as_completed
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote, unquote_to_bytes

import fitz  # PyMuPDF - renders PDF pages pypdf cannot read
import requests
from PIL import Image, ImageOps
from pypdf import PdfReader
from rich.progress import Progress

from .errors import ImageNormalizationError
from .models import ImageStatus, NormalizedImage, is_remote_source


DEFAULT_RELAY_URL = "http://localhost:3000/img?url="
DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_WORKERS = 8
JPEG_QUALITY = 100


def relay_url_for(url: str, relay_url: str = DEFAULT_RELAY_URL) -> str:
    """Build the relay request URL for a remote source."""
    return relay_url + quote(url, safe="")


def read_local_source(src: str) -> bytes:
    """
    Read the bytes of a local source.

    Args:
        src: A ``data:`` URI or a filesystem path

    Raises:
        ImageNormalizationError: If the data URI is malformed or the file is unreadable
    """
    if src.startswith("data:"):
        header, sep, payload = src.partition(",")
        if not sep:
            raise ImageNormalizationError(_short_key(src), "Malformed data URI")
        if header.endswith(";base64"):
            try:
                return base64.b64decode(payload, validate=False)
            except ValueError as e:
                raise ImageNormalizationError(_short_key(src), f"Invalid base64 payload: {e}") from e
        return unquote_to_bytes(payload)

    path = Path(src).expanduser()
    try:
        return path.read_bytes()
    except OSError as e:
        raise ImageNormalizationError(src, f"{type(e).__name__}: {e}") from e


def decode_pdf_page(data: bytes, key: str, use_fitz_fallback: bool = True) -> Image.Image:
    """
    Decode the first page of a PDF into a raster image.

    The largest embedded image is taken with pypdf. If pypdf fails or the
    page carries no image, the page is rendered with PyMuPDF instead.
    """
    pypdf_error: Optional[str] = None
    try:
        reader = PdfReader(BytesIO(data))
        if reader.pages:
            images = list(getattr(reader.pages[0], "images", None) or [])
            if images:
                main_img = max(images, key=_img_score)
                img = Image.open(BytesIO(main_img.data))
                img.load()
                return img
        pypdf_error = "No images found in PDF"
    except Exception as e:
        pypdf_error = f"{type(e).__name__}: {e}"

    if not use_fitz_fallback:
        raise ImageNormalizationError(key, pypdf_error or "Unknown pypdf error")

    try:
        doc = fitz.open(stream=data, filetype="pdf")
        try:
            # matrix=fitz.Matrix(2, 2) doubles the resolution
            pix = doc[0].get_pixmap(matrix=fitz.Matrix(2, 2), alpha=False)
            img = Image.open(BytesIO(pix.tobytes("png")))
            img.load()
            return img
        finally:
            doc.close()
    except Exception as e:
        raise ImageNormalizationError(key, f"{type(e).__name__}: {e}") from e


def decode_image(data: bytes, key: str, use_fitz_fallback: bool = True) -> Image.Image:
    """Decode raw bytes at native resolution (PDF first pages included), upright per EXIF."""
    if not data:
        raise ImageNormalizationError(key, "Empty image data")
    if data.startswith(b"%PDF"):
        return decode_pdf_page(data, key, use_fitz_fallback=use_fitz_fallback)
    try:
        img = Image.open(BytesIO(data))
        img.load()
        # Pixels are stored unrotated; the EXIF Orientation tag says how to show them
        return ImageOps.exif_transpose(img)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageNormalizationError(key, f"{type(e).__name__}: {e}") from e


def encode_jpeg(img: Image.Image, quality: int = JPEG_QUALITY) -> bytes:
    """Re-encode to baseline RGB JPEG. Transparency is flattened onto white."""
    if img.mode in ("RGBA", "LA") or "transparency" in img.info:
        rgba = img.convert("RGBA")
        base = Image.new("RGB", rgba.size, (255, 255, 255))
        base.paste(rgba, mask=rgba.split()[-1])
        img = base
    elif img.mode != "RGB":
        img = img.convert("RGB")

    buf = BytesIO()
    img.save(buf, format="JPEG", quality=quality, subsampling=0, progressive=False)
    return buf.getvalue()


class ImageNormalizer:
    """
    Turns card sources into JPEG bytes a renderer can embed directly.

    Remote sources that cannot be fetched or decoded directly are retried
    exactly once through the relay endpoint. Every source settles to either
    an OK or a FAILED `NormalizedImage`; failures never propagate.
    """

    def __init__(
        self,
        relay_url: Optional[str] = DEFAULT_RELAY_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_workers: int = DEFAULT_MAX_WORKERS,
        quality: int = JPEG_QUALITY,
        use_fitz_fallback: bool = True,
    ) -> None:
        self.relay_url = relay_url
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self.quality = quality
        self.use_fitz_fallback = use_fitz_fallback

    def fetch_remote(self, url: str) -> bytes:
        return self._get(url, key=url)

    def fetch_via_relay(self, url: str) -> bytes:
        return self._get(relay_url_for(url, self.relay_url or DEFAULT_RELAY_URL), key=url)

    def _get(self, request_url: str, key: str) -> bytes:
        try:
            response = requests.get(request_url, timeout=self.timeout, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            raise ImageNormalizationError(key, f"{type(e).__name__}: {e}") from e
        if not response.ok:
            raise ImageNormalizationError(key, f"HTTP {response.status_code}")
        return response.content

    def _load(self, src: str) -> tuple[Image.Image, bool]:
        if not is_remote_source(src):
            data = read_local_source(src)
            return decode_image(data, src, self.use_fitz_fallback), False

        try:
            data = self.fetch_remote(src)
            return decode_image(data, src, self.use_fitz_fallback), False
        except ImageNormalizationError as direct_error:
            if not self.relay_url:
                raise
            try:
                data = self.fetch_via_relay(src)
            except ImageNormalizationError as relay_error:
                raise ImageNormalizationError(
                    src, f"direct: {direct_error.message}; relay: {relay_error.message}"
                ) from relay_error
            return decode_image(data, src, self.use_fitz_fallback), True

    def normalize(self, src: str) -> NormalizedImage:
        """Normalize a single source. Never raises."""
        try:
            img, used_relay = self._load(src)
            size = img.size
            data = encode_jpeg(img, self.quality)
        except ImageNormalizationError as e:
            return NormalizedImage(key=src, status=ImageStatus.FAILED, error=e.message)
        except (OSError, ValueError) as e:
            return NormalizedImage(key=src, status=ImageStatus.FAILED, error=f"{type(e).__name__}: {e}")
        return NormalizedImage(key=src, status=ImageStatus.OK, data=data, size=size, used_relay=used_relay)

    def normalize_all(
        self,
        sources: Iterable[str],
        progress: Optional[Progress] = None,
    ) -> Dict[str, NormalizedImage]:
        """
        Normalize every distinct source concurrently.

        At most `max_workers` sources are in flight at once. The call returns
        only after every source has settled.

        Args:
            sources: Source references; duplicates are normalized once
            progress: Rich Progress instance for progress display

        Returns:
            Mapping of source key to result, in first-seen source order
        """
        unique: List[str] = list(dict.fromkeys(sources))
        if not unique:
            return {}

        task_id = None
        if progress is not None:
            task_id = progress.add_task("[cyan]Normalizing images...", total=len(unique))

        settled: Dict[str, NormalizedImage] = {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(unique))) as executor:
            futures = {executor.submit(self.normalize, src): src for src in unique}
            for future in as_completed(futures):
                src = futures[future]
                try:
                    settled[src] = future.result()
                except Exception as e:
                    settled[src] = NormalizedImage(
                        key=src, status=ImageStatus.FAILED, error=f"{type(e).__name__}: {e}"
                    )
                if progress is not None and task_id is not None:
                    progress.update(
                        task_id,
                        advance=1,
                        description=f"[cyan]Normalized [bold]{len(settled)}/{len(unique)}[/bold] images...",
                    )

        return {src: settled[src] for src in unique}


def _img_score(img: object) -> int:
    width = getattr(img, "width", 0) or 0
    height = getattr(img, "height", 0) or 0
    data = getattr(img, "data", b"")
    return width * height or len(data)


def _short_key(src: str, limit: int = 48) -> str:
    return src if len(src) <= limit else src[:limit] + "..."
