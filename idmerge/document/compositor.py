# idmerge/document/compositor.py
# ============================================================
# Page Compositor — Front + Back + Fields on one A4 Page
# ============================================================
# Lays out the two card images and the extracted fields on a
# single printable page and returns it as PDF bytes:
#
#   ┌──────────────────────────┐
#   │        身份证信息         │  title
#   │  正面:                   │
#   │     [ front image ]      │
#   │  反面:                   │
#   │     [ back image ]       │
#   │  姓名 ...   身份证号 ...  │  fields, two columns
#   └──────────────────────────┘
#
# Images are only ever scaled down, and only when the pair does
# not fit the page as-is. Layout constants are in PDF points
# (1/72 inch) and converted to pixels at the configured DPI.
#
# Usage:
#   compositor = PillowCompositor()
#   pdf_bytes = compositor.compose(front_bytes, back_bytes, fields)
# ============================================================

import io
from pathlib import Path
from typing import Optional, Protocol

from PIL import Image, ImageDraw, ImageFont

from config.settings import settings
from idmerge.errors import CompositionError
from idmerge.utils.image import decode_image, get_image_info, resize_to_fit
from idmerge.utils.logger import get_logger

logger = get_logger(__name__)


class Compositor(Protocol):
    """Renders a front/back pair plus fields into a document."""

    def compose(self, front: bytes, back: bytes, fields: Optional[dict] = None) -> bytes:
        ...


# A4 in points
A4_WIDTH_PT = 595.28
A4_HEIGHT_PT = 841.89
MARGIN_PT = 50
TITLE_HEIGHT_PT = 80
INFO_HEIGHT_PT = 120
IMAGE_SPACING_PT = 30
LINE_HEIGHT_PT = 20

# Fonts able to render CJK text, tried in order
CANDIDATE_FONT_PATHS = (
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/wqy/wqy-microhei.ttc",
    "/System/Library/Fonts/PingFang.ttc",
    "C:/Windows/Fonts/simhei.ttf",
    "C:/Windows/Fonts/msyh.ttc",
)

# (label, field key) per column
LEFT_COLUMN = (("姓名:", "name"), ("性别:", "gender"), ("民族:", "nation"), ("出生日期:", "birthday"))
RIGHT_COLUMN = (
    ("身份证号:", "id_number"),
    ("住址:", "address"),
    ("签发机关:", "issue_authority"),
    ("有效期限:", "valid_period"),
)


class PillowCompositor:
    """
    Compositor that rasterizes the page with Pillow and saves it as PDF.

    Example:
        >>> compositor = PillowCompositor(dpi=100)
        >>> data = compositor.compose(front, back, {"name": "李雷"})
        >>> data[:4]
        b'%PDF'
    """

    title = "身份证信息"
    front_label = "正面:"
    back_label = "反面:"
    info_label = "身份证信息:"

    def __init__(self, dpi: Optional[int] = None, font_path: Optional[str] = None):
        self.dpi = dpi or settings.compose_dpi
        self.font_path = font_path or settings.compose_font_path
        self.page_size = (self._px(A4_WIDTH_PT), self._px(A4_HEIGHT_PT))

    def _px(self, points: float) -> int:
        return int(round(points * self.dpi / 72))

    def _font(self, size_pt: float):
        size = max(8, self._px(size_pt))
        paths = [self.font_path] if self.font_path else []
        paths += [p for p in CANDIDATE_FONT_PATHS if Path(p).exists()]
        for path in paths:
            try:
                return ImageFont.truetype(path, size)
            except OSError as e:
                logger.warning(f"Could not load font {path}: {e}")
        return ImageFont.load_default(size)

    @staticmethod
    def _drawable(text: str, font) -> str:
        # Bitmap fonts only cover Latin-1
        if isinstance(font, ImageFont.FreeTypeFont):
            return text
        return text.encode("latin-1", "replace").decode("latin-1")

    def _text(self, draw: ImageDraw.ImageDraw, xy: tuple, text: str, font, fill=(0, 0, 0)) -> None:
        draw.text(xy, self._drawable(text, font), font=font, fill=fill)

    def _decode(self, data: bytes, side: str) -> Image.Image:
        try:
            return decode_image(data)
        except ValueError as e:
            raise CompositionError(f"Cannot read the {side} image: {e}") from e

    def compose(self, front: bytes, back: bytes, fields: Optional[dict] = None) -> bytes:
        """
        Render both images and the fields onto one A4 page.

        Returns:
            PDF file bytes.

        Raises:
            CompositionError: An image cannot be decoded or the page cannot be saved.
        """
        front_img = self._decode(front, "front").convert("RGB")
        back_img = self._decode(back, "back").convert("RGB")

        page_width, page_height = self.page_size
        margin = self._px(MARGIN_PT)
        spacing = self._px(IMAGE_SPACING_PT)
        info_height = self._px(INFO_HEIGHT_PT) if fields else 0
        max_width = page_width - 2 * margin
        available_height = page_height - 2 * margin - self._px(TITLE_HEIGHT_PT) - info_height

        total_height = front_img.height + back_img.height + spacing
        widest = max(front_img.width, back_img.width)
        if total_height > available_height or widest > max_width:
            max_image_height = (available_height - spacing) / 2
            front_img = resize_to_fit(front_img, max_width, max_image_height)
            back_img = resize_to_fit(back_img, max_width, max_image_height)
            logger.debug("Card images scaled down to fit the page")

        page = Image.new("RGB", self.page_size, "white")
        draw = ImageDraw.Draw(page)
        title_font = self._font(16)
        label_font = self._font(12)
        text_font = self._font(10)

        # Title
        title_width = draw.textlength(self._drawable(self.title, title_font), font=title_font)
        self._text(draw, ((page_width - title_width) / 2, self._px(30)), self.title, title_font)

        # Images, vertically centered in the space left by title and fields
        content_height = front_img.height + back_img.height + spacing
        top = margin + self._px(TITLE_HEIGHT_PT) + max(0, (available_height - content_height) // 2)
        label_offset = self._px(12) + self._px(6)

        front_x = (page_width - front_img.width) // 2
        self._text(draw, (front_x, top - label_offset), self.front_label, label_font)
        page.paste(front_img, (front_x, top))

        back_top = top + front_img.height + spacing
        back_x = (page_width - back_img.width) // 2
        self._text(draw, (back_x, back_top - label_offset), self.back_label, label_font)
        page.paste(back_img, (back_x, back_top))

        if fields:
            self._draw_fields(draw, fields, back_top + back_img.height + self._px(30), label_font, text_font)

        info = get_image_info(page)
        logger.debug(f"Composed page {info['width']}x{info['height']} at {self.dpi} DPI")

        buffer = io.BytesIO()
        try:
            page.save(buffer, format="PDF", resolution=float(self.dpi))
        except (OSError, ValueError) as e:
            raise CompositionError(f"Failed to write PDF: {e}") from e
        return buffer.getvalue()

    def _draw_fields(self, draw, fields: dict, top: int, heading_font, font) -> None:
        page_width = self.page_size[0]
        left_x = self._px(MARGIN_PT)
        right_x = page_width // 2 + self._px(20)
        value_offset = self._px(60)
        line_height = self._px(LINE_HEIGHT_PT)

        self._text(draw, (left_x, top), self.info_label, heading_font)
        top += int(line_height * 1.5)

        for column_x, column in ((left_x, LEFT_COLUMN), (right_x, RIGHT_COLUMN)):
            for row, (label, key) in enumerate(column):
                y = top + row * line_height
                self._text(draw, (column_x, y), label, font)
                value = str(fields.get(key) or "")
                self._text(draw, (column_x + value_offset, y), value, font, fill=(51, 51, 51))
