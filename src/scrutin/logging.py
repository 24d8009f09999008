"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/logging.py`.
Configuration structlog (JSON) avec sortie console et fichier tournant.

Composants détectés :
  - setup_logging
  - bind_context

======================== ENGLISH ========================
File: `src/scrutin/logging.py`.
structlog (JSON) configuration with console and rotating file output.

Detected components:
  - setup_logging
  - bind_context
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import structlog


def setup_logging(log_level: str, storage_path: Path) -> structlog.BoundLogger:
    """Configure structlog et les handlers console/fichier.

    English: Configure structlog and console/file handlers.
    """
    log_dir = storage_path / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = TimedRotatingFileHandler(
        log_dir / "scrutin.log",
        when="midnight",
        backupCount=30,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler()

    logging.basicConfig(
        level=log_level.upper(),
        handlers=[file_handler, console_handler],
        format="%(message)s",
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(log_level.upper())),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


def bind_context(
    logger: structlog.BoundLogger,
    entity_id: Optional[str] = None,
    actor: Optional[str] = None,
    action: Optional[str] = None,
) -> structlog.BoundLogger:
    """Attache le contexte standard au logger.

    English: Bind standard context to the logger.
    """
    context: dict[str, Any] = {}
    if entity_id:
        context["entity_id"] = entity_id
    if actor:
        context["actor"] = actor
    if action:
        context["action"] = action
    return logger.bind(**context)
