#!/usr/bin/env python3
"""
Post-processing Utilities for Segmentation Masks
Maps class masks back to the source image, colorizes and saves results
"""
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import cv2
import numpy as np

from .transforms import LetterboxInfo

# Cityscapes train-id colors (RGB)
CITYSCAPES_PALETTE = [
    (128, 64, 128), (244, 35, 232), (70, 70, 70), (102, 102, 156), (190, 153, 153),
    (153, 153, 153), (250, 170, 30), (220, 220, 0), (107, 142, 35), (152, 251, 152),
    (70, 130, 180), (220, 20, 60), (255, 0, 0), (0, 0, 142), (0, 0, 70),
    (0, 60, 100), (0, 80, 100), (0, 0, 230), (119, 11, 32),
]


def get_palette(num_classes: int, seed: int = 0) -> np.ndarray:
    """(256, 3) uint8 BGR lookup table; Cityscapes colors first, then seeded random"""
    rng = np.random.RandomState(seed)
    palette = rng.randint(0, 256, size=(256, 3)).astype(np.uint8)
    known = min(num_classes, len(CITYSCAPES_PALETTE))
    palette[:known] = np.array(CITYSCAPES_PALETTE[:known], dtype=np.uint8)[:, ::-1]
    return palette


class MaskPostProcessor:
    """Post-processing utilities for class-index masks"""

    def __init__(self, num_classes: int = 19):
        self.num_classes = num_classes
        self.palette = get_palette(num_classes)

    def remove_padding(self, mask: np.ndarray, letterbox: LetterboxInfo) -> np.ndarray:
        """Crop the letterbox border off a mask at padded resolution"""
        padded_h, padded_w = letterbox.padded_size
        if mask.shape[:2] != (padded_h, padded_w):
            # Graph output at a different resolution than its input
            mask = cv2.resize(mask, (padded_w, padded_h), interpolation=cv2.INTER_NEAREST)
        new_h, new_w = letterbox.resized_size
        return mask[letterbox.top:letterbox.top + new_h, letterbox.left:letterbox.left + new_w]

    def restore_original_size(self, mask: np.ndarray, letterbox: LetterboxInfo) -> np.ndarray:
        """Mask aligned with the source image"""
        cropped = self.remove_padding(mask, letterbox)
        height, width = letterbox.original_size
        if cropped.shape[:2] == (height, width):
            return np.ascontiguousarray(cropped)
        return cv2.resize(cropped, (width, height), interpolation=cv2.INTER_NEAREST)

    def colorize(self, mask: np.ndarray) -> np.ndarray:
        """Class indices -> BGR color image"""
        return self.palette[mask]

    def create_overlay(self, image: np.ndarray, mask: np.ndarray, alpha: float = 0.5) -> np.ndarray:
        """Blend the colorized mask over a BGR image of the same size"""
        colored = self.colorize(mask)
        if colored.shape[:2] != image.shape[:2]:
            colored = cv2.resize(colored, (image.shape[1], image.shape[0]),
                                 interpolation=cv2.INTER_NEAREST)
        return cv2.addWeighted(image, 1 - alpha, colored, alpha, 0)

    def calculate_class_metrics(self, mask: np.ndarray) -> Dict:
        """Pixel counts and coverage per class present in the mask"""
        total_pixels = int(mask.size)
        counts = np.bincount(mask.ravel(), minlength=self.num_classes)

        classes = {}
        for class_id, count in enumerate(counts):
            if count == 0:
                continue
            classes[str(class_id)] = {
                'pixels': int(count),
                'percentage': float(count) / total_pixels * 100 if total_pixels else 0.0,
            }

        return {
            'total_pixels': total_pixels,
            'num_classes_present': len(classes),
            'classes': classes,
        }

    def save_results(self, image: np.ndarray, mask: np.ndarray, output_dir: str, filename: str,
                     letterbox: Optional[LetterboxInfo] = None,
                     timings: Optional[Dict[str, float]] = None) -> Dict:
        """Save mask, color overlay and metadata for one image"""
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        if letterbox is not None:
            mask = self.restore_original_size(mask, letterbox)

        mask_path = output_path / f"{filename}_mask.png"
        cv2.imwrite(str(mask_path), mask)

        overlay_path = output_path / f"{filename}_overlay.png"
        cv2.imwrite(str(overlay_path), self.create_overlay(image, mask))

        metadata = {
            'filename': filename,
            'original_size': list(image.shape[:2]),
            'mask_size': list(mask.shape[:2]),
            'metrics': self.calculate_class_metrics(mask),
            'timings_ms': {k: v * 1e3 for k, v in (timings or {}).items()},
            'timestamp': datetime.now().isoformat(),
        }
        metadata_path = output_path / f"{filename}_metadata.json"
        with open(metadata_path, 'w') as f:
            json.dump(metadata, f, indent=2)

        return {
            'mask_path': str(mask_path),
            'overlay_path': str(overlay_path),
            'metadata_path': str(metadata_path),
        }
