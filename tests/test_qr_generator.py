import base64
import io

from PIL import Image

from qr_attendance.config import Config, TestingConfig, validate_config
from qr_attendance.modules.qr_generator import QRGenerator


def _decode(result):
    return Image.open(io.BytesIO(base64.b64decode(result["image_base64"])))


def test_plain_qr_code_is_a_png_data_url():
    generator = QRGenerator.from_config(TestingConfig)

    result = generator.generate_session_qr_code('{"type":"ATTENDANCE"}')

    assert result["data_url"].startswith("data:image/png;base64,")
    image = _decode(result)
    assert image.format == "PNG"
    assert image.size == tuple(result["image_size"])


def test_caption_extends_the_image_below_the_code():
    generator = QRGenerator.from_config(Config)
    payload = '{"type":"ATTENDANCE"}'

    plain = _decode(generator.generate_session_qr_code(payload))
    captioned = _decode(generator.generate_session_qr_code(
        payload, ["Class 7 / Subject 3", "Lecture - valid until 09:10:00 UTC"]
    ))

    assert captioned.size[0] == plain.size[0]
    assert captioned.size[1] > plain.size[1]


def test_shipped_configurations_are_valid():
    assert validate_config(Config) == []
    assert validate_config(TestingConfig) == []


def test_validate_config_reports_bad_duration_bounds():
    class BrokenConfig(Config):
        SESSION_MIN_DURATION_MINUTES = 0
        SESSION_DEFAULT_TYPE = "party"

    errors = validate_config(BrokenConfig)

    assert "SESSION_MIN_DURATION_MINUTES must be at least 1" in errors
    assert "SESSION_DEFAULT_TYPE must be one of SESSION_TYPES" in errors
