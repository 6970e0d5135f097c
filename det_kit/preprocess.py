from __future__ import annotations

import numpy as np


def resize_to_tile(image: np.ndarray, tile_size: int = 640) -> np.ndarray:
    """
    Stretch an (H, W, 3) image to a square tile without padding.

    The decoder maps boxes back with independent x/y scales, which is only valid
    for this kind of resize (no letterbox).
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for resize_to_tile(). Install with `pip install opencv-python`.") from e

    if image is None or not hasattr(image, "shape"):
        raise TypeError("image must be a NumPy array.")
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image, 'shape', None)}")
    if tile_size <= 0:
        raise ValueError("tile_size must be > 0")

    h, w = image.shape[:2]
    if (w, h) == (tile_size, tile_size):
        return image
    return cv2.resize(image, (tile_size, tile_size), interpolation=cv2.INTER_LINEAR)


def make_input_blob(
    image: np.ndarray,
    tile_size: int = 640,
    layout: str = "nhwc",
    bgr_to_rgb: bool = True,
) -> np.ndarray:
    """
    Build a float32 batch of one from an image, scaled to [0, 1].

    Returns:
        (1, tile, tile, 3) for layout="nhwc", (1, 3, tile, tile) for layout="nchw"
    """

    if layout not in ("nhwc", "nchw"):
        raise ValueError(f"Unsupported layout: {layout!r}")

    img = resize_to_tile(image, tile_size)
    if bgr_to_rgb:
        img = img[:, :, ::-1]
    blob = img.astype(np.float32) / 255.0
    if layout == "nchw":
        blob = np.transpose(blob, (2, 0, 1))
    return np.ascontiguousarray(blob[None, ...])
