#!/usr/bin/env python3
"""
Real-time Segmentation - Main User Application

Entry point for running the pipeline from a source checkout.

Available Applications:
  infer          Run segmentation on an image or a directory of images
  build-engine   Compile the model description into the artifact cache

Examples:
  python main.py build-engine --model-path bisenet.onnx --cache-path engines/bisenet.engine --engine tensorrt
  python main.py infer --model-path model.pt --cache-path cache/model.ts --input-dir images/
"""

import sys

from realtime_segmentation.cli import main

if __name__ == "__main__":
    sys.exit(main())
