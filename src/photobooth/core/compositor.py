"""Template-driven photo composition.

:class:`Compositor` renders a single output image from a background frame,
an ordered list of fractional slots, a slot → photo assignment, and an
optional comment.

Geometry
--------
Slots are stored as fractions of the background size, so a template works
for any frame resolution.  Each filled slot maps to a pixel rectangle::

    left   = round(bg_width  * slot.x)
    top    = round(bg_height * slot.y)
    width  = round(bg_width  * slot.width)
    height = round(bg_height * slot.height)

``round`` here is :func:`round_half_away`: nearest integer with ties away
from zero.  Python's built-in ``round`` uses banker's rounding, which would
shift some slots by a pixel relative to the JavaScript editor that authored
them.

Slots slightly outside the unit square (editor rounding, hand-edited JSON)
are clamped instead of rejected.

Fitting
-------
Photos are fitted with **cover** semantics: scaled uniformly until the
shorter side matches the target, then center-cropped.  The result always
fills the slot exactly, with no letterboxing and no distortion
(``ImageOps.fit``).

Z-order
-------
Slots are pasted in ascending index order, so later slots cover earlier
ones where they overlap.  The comment is drawn last, above every photo.

The compositor holds no mutable state and takes no locks; independent
compose calls may run in parallel.
"""

from __future__ import annotations

import io
import logging
import math
from collections.abc import Mapping, Sequence
from pathlib import Path

from PIL import Image, ImageColor, ImageDraw, ImageFont, ImageOps

from .errors import StorageError, TemplateAssetMissing
from .models import CommentBox, ComposeRequest, Slot, Template
from .validation import resolve_within

logger = logging.getLogger(__name__)

CONTENT_TYPE = "image/jpeg"

# Fallback font files tried after the requested family.
_FONT_FALLBACKS = (
    "DejaVuSans.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/Library/Fonts/Arial.ttf",
    "C:\\Windows\\Fonts\\arial.ttf",
)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero (``2.5 → 3``, ``-2.5 → -3``)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def slot_rect(background_size: tuple[int, int], slot: Slot) -> tuple[int, int, int, int]:
    """Map a fractional slot to a pixel rectangle ``(left, top, width, height)``.

    The slot is clamped into the unit square first and the rectangle is
    clipped to the background, so the result is always drawable (possibly
    empty).
    """
    bg_width, bg_height = background_size
    clamped = slot.clamped()

    left = round_half_away(bg_width * clamped.x)
    top = round_half_away(bg_height * clamped.y)
    width = round_half_away(bg_width * clamped.width)
    height = round_half_away(bg_height * clamped.height)

    width = max(0, min(width, bg_width - left))
    height = max(0, min(height, bg_height - top))
    return left, top, width, height


def cover_fit(photo: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Scale and center-crop ``photo`` so it exactly fills ``size``."""
    return ImageOps.fit(photo, size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def load_font(family: str | None, size: int, font_dirs: Sequence[Path] = ()) -> ImageFont.ImageFont:
    """Load a TrueType font for ``family``, falling back to common fonts.

    ``family`` may be a font file path, a file name, or a family name such
    as ``"Arial"`` (tried as ``Arial.ttf`` in ``font_dirs`` and on the
    system font path).  The final fallback is Pillow's bundled default font
    at the requested size.
    """
    candidates: list[str] = []
    if family:
        # CSS-style stacks: "Helvetica, Arial, sans-serif"
        for name in (part.strip().strip("'\"") for part in family.split(",")):
            if not name:
                continue
            file_names = [name] if Path(name).suffix else [f"{name}.ttf", f"{name}.otf", name]
            for directory in font_dirs:
                candidates.extend(str(Path(directory) / file_name) for file_name in file_names)
            candidates.extend(file_names)
    candidates.extend(_FONT_FALLBACKS)

    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size=size)
        except OSError:
            continue

    logger.debug(f"No TrueType font found for {family!r}; using Pillow default")
    return ImageFont.load_default(size=size)


def _parse_color(color: str | None) -> tuple[int, int, int, int]:
    try:
        return ImageColor.getcolor(color or "#000", "RGBA")
    except ValueError:
        logger.warning(f"Invalid comment color {color!r}; using black")
        return (0, 0, 0, 255)


class Compositor:
    """Renders composed photobooth images.

    Attributes:
        frames_dir: Directory holding template backgrounds.
        processed_dir: Processed store from which slot photos are read.
        quality: JPEG quality of the output.
        font_dirs: Extra directories searched for comment fonts.
    """

    content_type = CONTENT_TYPE

    def __init__(
        self,
        frames_dir: Path,
        processed_dir: Path,
        quality: int = 95,
        font_dirs: Sequence[Path] = (),
    ) -> None:
        self.frames_dir = Path(frames_dir)
        self.processed_dir = Path(processed_dir)
        self.quality = quality
        self.font_dirs = tuple(Path(d) for d in font_dirs)

    @classmethod
    def from_config(cls, config) -> Compositor:
        return cls(
            frames_dir=config.frames_dir,
            processed_dir=config.processed_dir,
            quality=config.compose_quality,
            font_dirs=config.font_dirs,
        )

    # -- Public interface ---------------------------------------------------

    def compose(
        self,
        template: Template,
        assignments: Mapping[int, str | None] | Sequence[str | None],
        comment: str | None = None,
        key: str | None = None,
    ) -> bytes:
        """Compose photos and an optional comment onto a template background.

        Args:
            template: Template providing the background, slots, and comment box.
            assignments: Slot index → processed photo filename.  A sequence is
                read positionally.  Missing, ``None``, or empty entries leave
                the slot unfilled.
            comment: Text for the comment box.  Ignored when empty or when the
                template has no comment box.
            key: Template key, used only in error messages.

        Returns:
            JPEG bytes with the background's dimensions.

        Raises:
            TemplateAssetMissing: If the background image does not exist.
            ValidationError: If the background or a photo name points
                outside its store directory.
            StorageError: If the background or an assigned photo cannot be
                read or decoded.
        """
        if not isinstance(assignments, Mapping):
            assignments = dict(enumerate(assignments))
        return self._render(
            template.background, template.slots, assignments, template.comment_box, comment, key
        )

    def compose_request(self, request: ComposeRequest) -> bytes:
        """Compose from the wire request form (slots carry their photo)."""
        return self._render(
            request.template.background,
            request.slots,
            request.assignments(),
            request.template.comment_box,
            request.comment,
            None,
        )

    # -- Rendering ----------------------------------------------------------

    def _render(
        self,
        background: str,
        slots: Sequence[Slot],
        assignments: Mapping[int, str | None],
        comment_box: CommentBox | None,
        comment: str | None,
        key: str | None,
    ) -> bytes:
        if not background:
            raise TemplateAssetMissing(background, key=key)
        frame_path = resolve_within(self.frames_dir, background, key=key)
        if not frame_path.is_file():
            raise TemplateAssetMissing(background, key=key)

        try:
            with Image.open(frame_path) as frame:
                canvas = frame.convert("RGBA")
        except OSError as e:
            raise StorageError(frame_path, e, key=key) from e

        for index, slot in enumerate(slots):
            photo_name = assignments.get(index)
            if not photo_name:
                continue
            self._paste_photo(canvas, slot, index, photo_name, key)

        if comment and comment_box is not None:
            self._draw_comment(canvas, comment_box, comment)

        buffer = io.BytesIO()
        canvas.convert("RGB").save(buffer, "JPEG", quality=self.quality)
        return buffer.getvalue()

    def _paste_photo(
        self, canvas: Image.Image, slot: Slot, index: int, photo_name: str, key: str | None
    ) -> None:
        left, top, width, height = slot_rect(canvas.size, slot)
        if width == 0 or height == 0:
            logger.warning(f"Slot {index} has no area; skipping {photo_name}")
            return

        photo_path = resolve_within(self.processed_dir, photo_name, key=key)
        if not photo_path.is_file():
            logger.warning(f"Photo {photo_name} for slot {index} no longer exists; leaving slot empty")
            return

        try:
            with Image.open(photo_path) as photo:
                photo = ImageOps.exif_transpose(photo).convert("RGBA")
        except OSError as e:
            raise StorageError(photo_path, e, key=key) from e

        fitted = cover_fit(photo, (width, height))
        canvas.paste(fitted, (left, top), fitted)

    def _draw_comment(self, canvas: Image.Image, box: CommentBox, comment: str) -> None:
        """Draw ``comment`` centered vertically in the box, aligned horizontally.

        The text is rendered on a transparent layer the size of the box, which
        clips anything that overflows, and then composited onto the canvas.
        """
        bg_width, bg_height = canvas.size
        left, top, width, height = slot_rect(canvas.size, box)
        if width == 0 or height == 0:
            return

        font_size = max(1, round_half_away(bg_height * box.font.size_rel))
        font = load_font(box.font.family, font_size, self.font_dirs)
        fill = _parse_color(box.font.color)

        layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        text_left, text_top, text_right, text_bottom = draw.textbbox((0, 0), comment, font=font)
        text_width = text_right - text_left
        text_height = text_bottom - text_top

        if box.font.align == "start":
            x = 0
        elif box.font.align == "end":
            x = width - text_width
        else:
            x = (width - text_width) / 2
        y = (height - text_height) / 2

        # textbbox offsets are relative to the draw origin; subtract them so
        # the ink box lands where it was measured to go.
        draw.text((x - text_left, y - text_top), comment, font=font, fill=fill)
        canvas.alpha_composite(layer, (left, top))
