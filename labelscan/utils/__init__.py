"""
==============================================================================
Utilities Package
==============================================================================

Utility classes and functions for the application.

Modules:
--------
- validators: Manual value validation
- images: Encoded image <-> RGBA buffer conversion

==============================================================================
"""

from .validators import ManualValueValidator
from .images import decode_base64_image, decode_image_bytes, encode_png_data_url

__all__ = [
    "ManualValueValidator",
    "decode_base64_image",
    "decode_image_bytes",
    "encode_png_data_url",
]
