"""
QR Code Generator Module - QR Attendance Session System

This module renders session payloads as QR code images for display on the
teacher's screen. The image is returned base64 encoded so the web layer can
embed it directly as a data URL.

Features:
- QR code generation from session payloads
- Configurable version, error correction, box size and border
- Optional caption strip with the session's class, subject and expiry
"""

import base64
import io
import logging
from typing import Any, Dict, List, Optional

import qrcode
from PIL import Image, ImageDraw, ImageFont

ERROR_CORRECTION_LEVELS = {
    'L': qrcode.constants.ERROR_CORRECT_L,  # ~7% error correction
    'M': qrcode.constants.ERROR_CORRECT_M,  # ~15% error correction
    'Q': qrcode.constants.ERROR_CORRECT_Q,  # ~25% error correction
    'H': qrcode.constants.ERROR_CORRECT_H   # ~30% error correction
}

CAPTION_LINE_HEIGHT = 20
CAPTION_PADDING = 10


class QRGenerator:
    """
    QR code renderer for attendance session payloads.
    """

    def __init__(self, version: Optional[int] = None, error_correction: str = 'M',
                 box_size: int = 10, border: int = 4, image_format: str = 'PNG'):
        """Initialize the QR code generator with rendering settings."""
        self.logger = logging.getLogger(__name__)
        self.settings = {
            'version': version,
            'error_correction': ERROR_CORRECTION_LEVELS[error_correction],
            'box_size': box_size,
            'border': border,
            'fill_color': 'black',
            'back_color': 'white'
        }
        self.image_format = image_format

    @classmethod
    def from_config(cls, config_class) -> 'QRGenerator':
        return cls(
            version=config_class.QR_CODE_VERSION,
            error_correction=config_class.QR_CODE_ERROR_CORRECT,
            box_size=config_class.QR_CODE_SIZE,
            border=config_class.QR_CODE_BORDER,
            image_format=config_class.QR_CODE_FORMAT
        )

    def generate_session_qr_code(self, payload: str,
                                 caption: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Render a session payload as a QR code image.

        Args:
            payload (str): Encoded session payload
            caption (List[str]): Lines printed under the code, if any

        Returns:
            Dict[str, Any]: ``image_base64``, ``image_size`` and ``data_url``
        """
        qr = qrcode.QRCode(
            version=self.settings['version'],
            error_correction=self.settings['error_correction'],
            box_size=self.settings['box_size'],
            border=self.settings['border']
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(
            fill_color=self.settings['fill_color'],
            back_color=self.settings['back_color']
        ).get_image()

        if caption:
            img = self._add_caption(img, caption)

        buffer = io.BytesIO()
        img.save(buffer, format=self.image_format)
        img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
        mime_type = f"image/{self.image_format.lower()}"

        return {
            'image_base64': img_base64,
            'image_size': img.size,
            'data_url': f"data:{mime_type};base64,{img_base64}"
        }

    def _add_caption(self, qr_img: Image.Image, lines: List[str]) -> Image.Image:
        """
        Add a caption strip below the QR code image.

        Args:
            qr_img (Image.Image): QR code image
            lines (List[str]): Caption lines, drawn centered

        Returns:
            Image.Image: QR code with caption, or the original image if drawing fails
        """
        try:
            original_size = qr_img.size
            new_height = original_size[1] + CAPTION_PADDING * 2 + CAPTION_LINE_HEIGHT * len(lines)
            new_img = Image.new('RGB', (original_size[0], new_height), 'white')
            new_img.paste(qr_img.convert('RGB'), (0, 0))

            draw = ImageDraw.Draw(new_img)
            try:
                font = ImageFont.truetype("arial.ttf", 14)
            except (IOError, OSError):
                font = ImageFont.load_default()

            img_width = new_img.size[0]
            text_y = original_size[1] + CAPTION_PADDING
            for line in lines:
                bbox = draw.textbbox((0, 0), line, font=font)
                line_width = bbox[2] - bbox[0]
                draw.text(((img_width - line_width) // 2, text_y), line, fill='black', font=font)
                text_y += CAPTION_LINE_HEIGHT

            return new_img

        except (OSError, ValueError) as e:
            self.logger.warning(f"Failed to add caption, returning plain QR code: {str(e)}")
            return qr_img
