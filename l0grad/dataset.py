import os
from typing import List, Sequence

import numpy as np
from PIL import Image, UnidentifiedImageError

from l0grad.config import L0Config, save_config
from l0grad.errors import InputError

WIDE_RANGE = 65535.0


def load_image(image_path) -> np.ndarray:
    """
    Decode an image file into an array of intensities normalized to [0, 1].

    Grayscale images give a rows x cols array, everything else is converted to RGB
    and gives a rows x cols x 3 array. 16-bit and 32-bit integer grayscale images
    are scaled by the 16-bit range, floating point images are clipped to [0, 1].
    """
    try:
        with Image.open(image_path) as image:
            if image.mode.startswith("I"):
                data = np.asarray(image, dtype=np.float64)
                return np.clip(data / WIDE_RANGE, 0, 1)
            if image.mode == "F":
                return np.clip(np.asarray(image, dtype=np.float64), 0, 1)
            if image.mode not in ("L", "RGB"):
                image = image.convert("RGB")
            data = np.asarray(image, dtype=np.float64)
    except FileNotFoundError as e:
        raise InputError(f"can't read input image {image_path}: file not found") from e
    except (UnidentifiedImageError, OSError) as e:
        raise InputError(f"can't read input image {image_path}: {e}") from e
    return data / 255.0


def split_channels(image: np.ndarray) -> List[np.ndarray]:
    image = np.asarray(image, dtype=np.float64)
    if image.ndim == 2:
        return [image.copy()]
    if image.ndim == 3:
        return [image[:, :, c].copy() for c in range(image.shape[2])]
    raise ValueError(f"Expected a 2D or 3D image array, got shape {image.shape}")


def merge_channels(channels: Sequence[np.ndarray]) -> np.ndarray:
    if len(channels) == 1:
        return channels[0].copy()
    return np.stack(channels, axis=-1)


def quantize(field: np.ndarray) -> np.ndarray:
    """Scale to 8 bits as saturate(round(|255 * field|)), non-finite values map to 0."""
    field = np.where(np.isfinite(field), field, 0.0)
    return np.clip(np.rint(np.abs(255.0 * field)), 0, 255).astype(np.uint8)


def save_image(image: np.ndarray, path):
    Image.fromarray(image).save(path)


def result_filename(out_dir, iteration: int) -> str:
    return os.path.join(out_dir, f"result_iteration_{iteration}.png")


def save_results(results: Sequence[np.ndarray], out_dir, config: L0Config) -> List[str]:
    """Write one PNG per iteration (1-based names) and the configuration echo."""
    os.makedirs(out_dir, exist_ok=True)
    paths = []
    for i, result in enumerate(results):
        path = result_filename(out_dir, i + 1)
        save_image(result, path)
        paths.append(path)
    save_config(config, os.path.join(out_dir, "config.txt"))
    return paths


class Synthetic:
    """Step edge test image with optional gaussian noise."""

    def __init__(self, rows, cols=None, channels=1, noise=0.0, random_state=None):
        cols = rows if cols is None else cols
        rng = np.random.default_rng(random_state)
        self.img_true = np.zeros((rows, cols))
        self.img_true[:, cols // 2 :] = 0.9
        img = self.img_true.copy()
        if noise > 0:
            img = np.clip(img + rng.normal(0, noise, img.shape), 0, 1)
        self.img = img if channels == 1 else np.stack([img] * channels, axis=-1)

    def get_data(self):
        return self.img
