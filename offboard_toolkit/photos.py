"""Reading and writing the directory ``thumbnailPhoto`` attribute."""
from __future__ import annotations

import io
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from PIL import Image, UnidentifiedImageError

from .ad_client import ADClient, DirectoryError
from .config import PhotoConfig
from .models import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
Viewer = Callable[[Image.Image, str], None]


@dataclass(frozen=True)
class PhotoLayout:
    """Placement of a scaled source image on the square canvas."""

    ratio: float
    width: int
    height: int
    offset_x: float
    offset_y: int = 0


def compute_layout(width: int, height: int, size: int = 96) -> PhotoLayout:
    """Scale to the canvas height and centre horizontally.

    A 400x300 source on a 96 pixel canvas is drawn 128 pixels wide at
    ``offset_x == -16``; the overflow is cropped by the canvas.
    """

    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image dimensions {width}x{height}.")
    ratio = width / height
    return PhotoLayout(
        ratio=ratio,
        width=max(1, round(size * ratio)),
        height=size,
        offset_x=round(size - size * ratio) / 2,
    )


def render_thumbnail(
    source: PathLike,
    size: int = 96,
    quality: int = 80,
    background: str = "white",
    temp_dir: Optional[PathLike] = None,
) -> bytes:
    """Render ``source`` onto a square canvas and return JPEG bytes.

    Sources wider than the canvas are resampled only across the part the
    canvas shows, so a very wide banner never produces a huge strip.
    """

    converted = None
    canvas = None
    scaled = None
    temp_path = None
    try:
        with Image.open(source) as original:
            layout = compute_layout(original.width, original.height, size)
            converted = original.convert("RGBA")
        offset_x = int(layout.offset_x)
        width, box = layout.width, None
        if layout.width > size:
            scale = converted.width / layout.width
            left = min(-offset_x * scale, converted.width)
            right = min((size - offset_x) * scale, converted.width)
            width, box, offset_x = size, (left, 0, right, converted.height), 0
        scaled = converted.resize((width, layout.height), Image.Resampling.LANCZOS, box=box)
        canvas = Image.new("RGB", (size, size), background)
        canvas.paste(scaled, (offset_x, layout.offset_y), scaled)

        handle, temp_path = tempfile.mkstemp(
            suffix=".jpg", prefix="thumbnail-", dir=str(temp_dir) if temp_dir else None
        )
        with os.fdopen(handle, "wb") as stream:
            canvas.save(stream, format="JPEG", quality=quality)
        with open(temp_path, "rb") as stream:
            return stream.read()
    finally:
        for image in (converted, scaled, canvas):
            if image is not None:
                image.close()
        if temp_path and os.path.exists(temp_path):
            os.remove(temp_path)


class PreviewUnavailableError(RuntimeError):
    """Raised when no window can be opened to show a photo."""


def preview_image(image: Image.Image, title: str) -> None:
    """Show ``image`` in a window of its native size and block until it is closed."""

    try:
        import tkinter

        from PIL import ImageTk
    except ImportError as exc:
        raise PreviewUnavailableError(f"Tk is not installed ({exc}).") from exc
    try:
        root = tkinter.Tk()
    except tkinter.TclError as exc:
        raise PreviewUnavailableError(f"No display is available ({exc}).") from exc
    try:
        root.title(title)
        root.geometry(f"{image.width}x{image.height}")
        root.resizable(False, False)
        root.protocol("WM_DELETE_WINDOW", root.quit)
        photo = ImageTk.PhotoImage(image, master=root)
        tkinter.Label(root, image=photo, borderwidth=0).pack()
        root.mainloop()
    finally:
        root.destroy()


def fetch_photo(directory: ADClient, identifier: str) -> OperationResult:
    """Read the stored photo; the bytes end up in ``details["photo"]``."""

    result = OperationResult(operation="photo-fetch", identifier=identifier)
    if not identifier:
        return result.fail(ErrorKind.MISSING_IDENTIFIER, "An account identifier is required.")

    identity = directory.get_identity(identifier, attributes=["thumbnailPhoto"])
    if identity is None:
        return result.fail(
            ErrorKind.NO_SUCH_IDENTITY, f"No account named '{identifier}' exists in the directory."
        )
    if not identity.thumbnail_photo:
        return result.fail(ErrorKind.NO_PHOTO, f"'{identifier}' has no thumbnailPhoto stored.")

    result.details.update(
        {
            "distinguished_name": identity.distinguished_name,
            "photo": identity.thumbnail_photo,
            "photo_size": len(identity.thumbnail_photo),
        }
    )
    return result


def show_photo(
    directory: ADClient, identifier: str, viewer: Optional[Viewer] = None
) -> OperationResult:
    result = fetch_photo(directory, identifier)
    if not result.ok:
        return result

    viewer = viewer or preview_image
    try:
        with Image.open(io.BytesIO(result.details["photo"])) as image:
            image.load()
            result.details.update({"width": image.width, "height": image.height})
            viewer(image, f"{identifier} ({image.width}x{image.height})")
    except PreviewUnavailableError as exc:
        return result.fail(
            ErrorKind.DISPLAY_UNAVAILABLE,
            f"Unable to open a preview window for '{identifier}': {exc} "
            "Use 'photo export' to save the photo to a file instead.",
        )
    except (UnidentifiedImageError, OSError) as exc:
        return result.fail(ErrorKind.IMAGE_ERROR, f"Stored photo of '{identifier}' is not a readable image: {exc}")
    result.actions.append("displayed photo")
    return result


def export_photo(directory: ADClient, identifier: str, destination: PathLike) -> OperationResult:
    result = fetch_photo(directory, identifier)
    if not result.ok:
        return result
    target = Path(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(result.details["photo"])
    result.actions.append(f"wrote {target}")
    return result


def assign_photo(
    directory: ADClient,
    identifier: str,
    source_path: PathLike,
    settings: Optional[PhotoConfig] = None,
    dry_run: bool = False,
) -> OperationResult:
    """Resize ``source_path`` and store it as the account's thumbnailPhoto."""

    settings = settings or PhotoConfig()
    result = OperationResult(operation="photo-set", identifier=identifier, dry_run=dry_run)
    if not identifier:
        return result.fail(ErrorKind.MISSING_IDENTIFIER, "An account identifier is required.")
    source = Path(source_path)
    if not source.is_file():
        return result.fail(ErrorKind.MISSING_SOURCE_FILE, f"Source image '{source}' does not exist.")

    identity = directory.get_identity(identifier)
    if identity is None:
        return result.fail(
            ErrorKind.NO_SUCH_IDENTITY, f"No account named '{identifier}' exists in the directory."
        )

    try:
        data = render_thumbnail(
            source,
            size=settings.size,
            quality=settings.quality,
            background=settings.background,
            temp_dir=settings.temp_dir,
        )
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        return result.fail(ErrorKind.IMAGE_ERROR, f"Unable to render '{source}': {exc}")
    result.details.update({"distinguished_name": identity.distinguished_name, "photo_size": len(data)})

    if dry_run:
        result.actions.append(f"would store {len(data)} byte photo on {identity.distinguished_name}")
        return result
    try:
        directory.set_thumbnail_photo(identity.distinguished_name, data)
    except DirectoryError as exc:
        return result.fail(ErrorKind.DIRECTORY_ERROR, str(exc))
    result.actions.append(f"stored {len(data)} byte photo on {identity.distinguished_name}")
    logger.info("Updated thumbnailPhoto for %s (%d bytes)", identifier, len(data))
    return result


__all__ = [
    "PhotoLayout",
    "PreviewUnavailableError",
    "assign_photo",
    "compute_layout",
    "export_photo",
    "fetch_photo",
    "preview_image",
    "render_thumbnail",
    "show_photo",
]
