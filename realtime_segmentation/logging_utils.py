#!/usr/bin/env python3
"""
Logging Setup for Command-line Entry Points
Library modules only create loggers; handlers are configured here
"""
import logging
import os
import sys
from datetime import datetime
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO,
                  name: str = "segmentation") -> Optional[str]:
    """Console logging plus an optional timestamped log file; returns the file path"""
    handlers = [logging.StreamHandler(sys.stdout)]

    log_file = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = os.path.join(log_dir, f"{name}_{timestamp}.log")
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    return log_file
