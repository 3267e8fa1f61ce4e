"""Host-side helpers for presenting the CHIP-8 output pins.

The core only exposes the 2048 output pins; these helpers turn them into
rows, text art or an image array for a surrounding program to show.
"""

from typing import List, Sequence

from .state import DISPLAY_HEIGHT, DISPLAY_WIDTH, OUTPUT_PIN_COUNT


def to_rows(pixels: Sequence[bool]) -> List[List[bool]]:
    """Split row-major output pins into 32 rows of 64 pixels.

    Raises:
        ValueError: If pixels does not hold exactly 2048 entries
    """
    if len(pixels) != OUTPUT_PIN_COUNT:
        raise ValueError(f"Expected {OUTPUT_PIN_COUNT} pixels, got {len(pixels)}")
    return [
        list(pixels[y * DISPLAY_WIDTH:(y + 1) * DISPLAY_WIDTH])
        for y in range(DISPLAY_HEIGHT)
    ]


def render_text(pixels: Sequence[bool], on: str = "#", off: str = ".") -> str:
    """Render output pins as 32 lines of text."""
    return "\n".join(
        "".join(on if pixel else off for pixel in row)
        for row in to_rows(pixels)
    )


def to_image(pixels: Sequence[bool], scale: int = 8):
    """Render output pins as a scaled RGB numpy array.

    Args:
        pixels: 2048 row-major output pins
        scale: Size of one CHIP-8 pixel in image pixels

    Returns:
        uint8 array of shape (32 * scale, 64 * scale, 3)
    """
    try:
        import numpy as np
    except ImportError:
        raise ImportError("Image rendering requires numpy (pip install chip8-vm[demo])")

    if scale < 1:
        raise ValueError("scale must be at least 1")

    frame = np.array(to_rows(pixels), dtype=np.uint8) * 255
    scaled = np.repeat(np.repeat(frame, scale, axis=0), scale, axis=1)
    return np.stack([scaled] * 3, axis=-1)
