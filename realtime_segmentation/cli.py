#!/usr/bin/env python3
"""
Command-line Interface for Real-time Segmentation
Pre-builds the compiled graph cache and runs inference on images
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import cv2
from tqdm import tqdm

from .config import SegmenterConfig, create_config
from .errors import ConfigError, InferenceError, StartupError
from .graph_manager import GraphLifecycleManager
from .logging_utils import setup_logging
from .postprocess import MaskPostProcessor
from .segmenter import Segmenter

logger = logging.getLogger(__name__)

IMAGE_PATTERNS = ("*.jpg", "*.jpeg", "*.png", "*.bmp")


def add_config_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--config", help="JSON configuration file")
    parser.add_argument("--preset", help="Named configuration preset")
    parser.add_argument("--model-path", help="Model description (TorchScript .pt or ONNX)")
    parser.add_argument("--cache-path", help="Compiled artifact cache file")
    parser.add_argument("--engine", choices=["torchscript", "tensorrt"])
    parser.add_argument("--device", choices=["auto", "cuda", "cpu"])
    parser.add_argument("--device-index", type=int)
    parser.add_argument("--fp16", action="store_true", default=None, help="Request reduced precision")
    parser.add_argument("--num-classes", type=int)
    parser.add_argument("--reducer", choices=["device", "host"])
    parser.add_argument("--no-fingerprint", action="store_true",
                        help="Trust an existing cache file without checking the model fingerprint")
    parser.add_argument("--log-dir", help="Also write logs to a timestamped file here")
    parser.add_argument("--verbose", action="store_true")


def load_config(args: argparse.Namespace) -> SegmenterConfig:
    """Config file or preset, overridden by explicit command-line options"""
    overrides = {
        'model_path': args.model_path,
        'cache_path': args.cache_path,
        'engine': args.engine,
        'device': args.device,
        'device_index': args.device_index,
        'use_fp16': args.fp16,
        'num_classes': args.num_classes,
        'reducer': args.reducer,
        'fingerprint_cache': False if args.no_fingerprint else None,
    }

    if args.config:
        with open(args.config, "r") as f:
            values = json.load(f)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return SegmenterConfig.from_dict(values)

    return create_config(args.preset, **overrides)


def list_images(input_dir: str) -> List[Path]:
    input_path = Path(input_dir)
    image_files = []
    for pattern in IMAGE_PATTERNS:
        image_files.extend(input_path.glob(pattern))
    return sorted(image_files)


def infer_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Real-time Segmentation Inference")
    add_config_arguments(parser)
    parser.add_argument("--input-image", help="Path to input image")
    parser.add_argument("--input-dir", help="Directory containing input images")
    parser.add_argument("--output-dir", default="inference_results", help="Output directory")
    args = parser.parse_args(argv)

    setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)

    if args.input_image:
        image_files = [Path(args.input_image)]
    elif args.input_dir:
        image_files = list_images(args.input_dir)
        if not image_files:
            logger.error(f"No image files found in {args.input_dir}")
            return 1
    else:
        parser.error("Please provide either --input-image or --input-dir")

    try:
        config = load_config(args)
        segmenter = Segmenter(config)
    except (ConfigError, StartupError) as e:
        logger.error(f"Could not start segmentation: {e}")
        return 1

    post_processor = MaskPostProcessor(config.num_classes)
    failures = 0

    with segmenter:
        for image_file in tqdm(image_files, desc="Segmenting", disable=len(image_files) == 1):
            image = cv2.imread(str(image_file))
            if image is None:
                logger.error(f"Could not load {image_file}")
                failures += 1
                continue

            try:
                result = segmenter.segment(image)
            except InferenceError as e:
                logger.error(f"Inference failed for {image_file}: {e}")
                return 1

            post_processor.save_results(image, result.mask, args.output_dir, image_file.stem,
                                        letterbox=result.letterbox, timings=result.timings)
            logger.info(f"{image_file.name}: {result.output_shape} in "
                        f"{result.timings['total'] * 1e3:.1f} ms")

    logger.info(f"Inference completed: {len(image_files) - failures}/{len(image_files)} images "
                f"written to {args.output_dir}")
    return 0 if failures == 0 else 1


def build_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Build and cache the compiled segmentation graph")
    add_config_arguments(parser)
    parser.add_argument("--force", action="store_true", help="Rebuild even if the cache exists")
    args = parser.parse_args(argv)

    setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = load_config(args)
        path = GraphLifecycleManager().build_only(config, force=args.force)
    except (ConfigError, StartupError) as e:
        logger.error(f"Build failed: {e}")
        return 1

    logger.info(f"Compiled artifact: {path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """realtime-segmentation {infer,build-engine} [options]"""
    argv = list(sys.argv[1:] if argv is None else argv)
    commands = {'infer': infer_main, 'build-engine': build_main}

    if not argv or argv[0] not in commands:
        print(f"usage: realtime-segmentation {{{','.join(commands)}}} [options]")
        print("  infer          Run segmentation on an image or a directory of images")
        print("  build-engine   Compile the model description into the artifact cache")
        return 0 if argv and argv[0] in ("-h", "--help") else 2

    return commands[argv[0]](argv[1:])


if __name__ == "__main__":
    sys.exit(main())
