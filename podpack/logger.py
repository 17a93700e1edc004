#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
logger.py - Central logging system for podpack

Features:
 - Unified logger for all modules (podpack.*)
 - Colored console output (via colorama)
 - Log rotation (podpack.log capped at ~5MB, keep 5 files)
 - JSON mode optional (structured logs, PODPACK_LOG_FORMAT=json)
 - Easy use: from podpack.logger import get_logger
"""

import logging
import logging.handlers
import os
import sys
import json
import time
from pathlib import Path
from typing import Optional

from colorama import Fore, Style, init as colorama_init

colorama_init()

DEFAULT_LOG_DIR = Path.home() / ".podpack" / "logs"

# ---------- Custom Formatter -------------------------------------------------

class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: Fore.BLUE,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.MAGENTA,
    }

    RESET = Style.RESET_ALL

    def format(self, record):
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.created))
        level_color = self.COLORS.get(record.levelno, "")
        prefix = f"[{ts}] {level_color}{record.levelname:<8}{self.RESET} [{record.name}]"
        msg = super().format(record)
        return f"{prefix} {msg}"

class JsonFormatter(logging.Formatter):
    def format(self, record):
        return json.dumps({
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno
        })

# ---------- Logger Factory ---------------------------------------------------

def log_dir() -> Path:
    return Path(os.environ.get("PODPACK_LOG_DIR", str(DEFAULT_LOG_DIR))).expanduser()

def json_logging() -> bool:
    return os.environ.get("PODPACK_LOG_FORMAT", "").lower() == "json"

def get_logger(name: str,
               level: int = logging.INFO,
               json_mode: Optional[bool] = None) -> logging.Logger:
    """
    Get a configured logger instance.
    - name: usually podpack.<module>
    - level: logging level
    - json_mode: if True, log in JSON instead of color/text
      (default: PODPACK_LOG_FORMAT=json)
    """
    if json_mode is None:
        json_mode = json_logging()
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger  # already configured

    logger.setLevel(level)

    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    if json_mode:
        ch.setFormatter(JsonFormatter())
    else:
        ch.setFormatter(ColorFormatter("%(message)s"))
    logger.addHandler(ch)

    # Rotating file handler (main log)
    target = log_dir()
    try:
        target.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(target / "podpack.log", maxBytes=5_000_000, backupCount=5)
    except OSError as e:
        logger.warning(f"File logging disabled ({target}): {e}")
    else:
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        logger.addHandler(fh)

    logger.propagate = False
    return logger

def set_level(level: int) -> None:
    """Apply a level to every podpack logger created so far."""
    for name, obj in logging.Logger.manager.loggerDict.items():
        if name.startswith("podpack") and isinstance(obj, logging.Logger):
            obj.setLevel(level)
