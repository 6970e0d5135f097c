import unittest

import numpy as np

try:
    import cv2  # noqa: F401

    HAS_CV2 = True
except ImportError:  # pragma: no cover
    HAS_CV2 = False

from det_kit.preprocess import make_input_blob, resize_to_tile


@unittest.skipUnless(HAS_CV2, "OpenCV not installed")
class TestPreprocess(unittest.TestCase):
    def test_stretch_resize_to_square(self) -> None:
        image = np.zeros((480, 1280, 3), dtype=np.uint8)
        out = resize_to_tile(image, 640)
        self.assertEqual(out.shape, (640, 640, 3))

    def test_tile_sized_image_untouched(self) -> None:
        image = np.zeros((320, 320, 3), dtype=np.uint8)
        self.assertIs(resize_to_tile(image, 320), image)

    def test_nhwc_blob_rgb_scaled(self) -> None:
        image = np.zeros((64, 64, 3), dtype=np.uint8)
        image[:, :, 0] = 255  # blue in BGR
        blob = make_input_blob(image, tile_size=64)
        self.assertEqual(blob.shape, (1, 64, 64, 3))
        self.assertEqual(blob.dtype, np.float32)
        self.assertTrue(np.allclose(blob[0, :, :, 2], 1.0))
        self.assertTrue(np.allclose(blob[0, :, :, 0], 0.0))

    def test_nchw_blob(self) -> None:
        image = np.full((32, 48, 3), 128, dtype=np.uint8)
        blob = make_input_blob(image, tile_size=32, layout="nchw", bgr_to_rgb=False)
        self.assertEqual(blob.shape, (1, 3, 32, 32))
        self.assertTrue(np.allclose(blob, 128 / 255.0))

    def test_invalid_inputs(self) -> None:
        with self.assertRaises(ValueError):
            resize_to_tile(np.zeros((10, 10), dtype=np.uint8), 32)
        with self.assertRaises(TypeError):
            resize_to_tile(None, 32)  # type: ignore[arg-type]
        with self.assertRaises(ValueError):
            make_input_blob(np.zeros((10, 10, 3), dtype=np.uint8), 32, layout="chw")


if __name__ == "__main__":
    unittest.main()
