"""QR encoder for provisioning URIs.

Renders an ``otpauth://`` URI as a PNG data URL that can be dropped into an
``<img src=...>`` for the user to scan.
"""

from __future__ import annotations

import base64
from io import BytesIO

import qrcode

from .exceptions import InvalidParameterError


class PngQrEncoder:
    """Encode provisioning URIs as base64 PNG data URLs."""

    def __init__(self, *, box_size: int = 10, border: int = 4) -> None:
        self.box_size = box_size
        self.border = border

    def encode(self, data: str) -> str:
        """Render ``data`` as a ``data:image/png;base64,...`` URL."""
        if not data:
            raise InvalidParameterError("Nothing to encode")

        qr = qrcode.QRCode(box_size=self.box_size, border=self.border)
        qr.add_data(data)
        qr.make(fit=True)
        img = qr.make_image()

        buffer = BytesIO()
        img.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode()
        return f"data:image/png;base64,{encoded}"


__all__: list[str] = ["PngQrEncoder"]
