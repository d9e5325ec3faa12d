"""
Centralized logging configuration for the Mili Llama data layer.

This module provides standardized logging with timestamps, function names,
and appropriate log levels for the Firestore, storage and workflow components.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional


class MiliLlamaLogger:
    """
    Centralized logger for the Mili Llama data layer.
    Provides consistent formatting and handling across all modules.
    """

    _loggers = {}
    _configured = False

    @classmethod
    def setup_logging(
        cls,
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
        console_output: bool = True
    ) -> None:
        """
        Configure the logging system for the entire application.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                Falls back to the LOG_LEVEL environment variable, then INFO
            log_file: Optional log file path. If None, uses LOG_DIR (default ./logs)
            console_output: Whether to output logs to console
        """
        if cls._configured:
            return

        if log_level is None:
            log_level = os.getenv("LOG_LEVEL", "INFO")

        if log_file is None:
            log_dir = Path(os.getenv("LOG_DIR", "logs"))
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = str(log_dir / "mili_llama.log")

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level.upper()))

        # Clear any existing handlers
        root_logger.handlers.clear()

        formatter = logging.Formatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)-25s | %(funcName)-20s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        if console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            console_handler.setLevel(getattr(logging, log_level.upper()))
            root_logger.addHandler(console_handler)

        # File handler with rotation
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

        cls._configured = True

        logger = cls.get_logger("logging_config")
        logger.info(f"Logging system configured - Level: {log_level}, File: {log_file}")

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific module or component.

        Args:
            name: Logger name (typically module name)

        Returns:
            Configured logger instance
        """
        if name not in cls._loggers:
            if not cls._configured:
                cls.setup_logging()

            logger = logging.getLogger(name)
            cls._loggers[name] = logger

        return cls._loggers[name]


def get_firestore_logger() -> logging.Logger:
    """Get logger specifically for Firestore operations."""
    return MiliLlamaLogger.get_logger("firestore")


def get_storage_logger() -> logging.Logger:
    """Get logger specifically for Cloud Storage operations."""
    return MiliLlamaLogger.get_logger("storage")


def get_auth_logger() -> logging.Logger:
    return MiliLlamaLogger.get_logger("identity")


def get_workflow_logger() -> logging.Logger:
    """Get logger for create-then-attach workflows and the reconciliation sweep."""
    return MiliLlamaLogger.get_logger("workflow")


def get_view_logger() -> logging.Logger:
    return MiliLlamaLogger.get_logger("live_views")


def get_service_logger() -> logging.Logger:
    """Get logger for screen services."""
    return MiliLlamaLogger.get_logger("services")


def get_main_logger() -> logging.Logger:
    """Get logger for main application."""
    return MiliLlamaLogger.get_logger("main_app")


def log_firestore_operation(
    logger: logging.Logger,
    operation: str,
    path: str,
    success: bool = True,
    details: Optional[str] = None,
    error: Optional[Exception] = None
) -> None:
    """
    Standardized logging for document store operations.

    Args:
        logger: Logger instance to use
        operation: Document operation (GET, QUERY, ADD, SET, UPDATE, DELETE, SUBSCRIBE)
        path: Collection or document path
        success: Whether the operation was successful
        details: Additional details
        error: Exception if operation failed
    """
    message_parts = [f"FIRESTORE_{operation.upper()}", f"Path: {path}"]

    if details:
        message_parts.append(f"Details: {details}")

    message = " | ".join(message_parts)

    if success:
        logger.info(message)
    elif error:
        logger.error(f"{message} | Error: {error}")
    else:
        logger.error(message)


def log_storage_operation(
    logger: logging.Logger,
    operation: str,
    path: str,
    success: bool = True,
    error: Optional[Exception] = None
) -> None:
    """
    Standardized logging for blob storage operations.

    Args:
        logger: Logger instance to use
        operation: Storage operation (PUT, URL, LIST, GET, DELETE)
        path: Object path inside the bucket
        success: Whether the operation was successful
        error: Exception if operation failed
    """
    message = f"STORAGE_{operation.upper()} | Path: {path}"
    if success:
        logger.info(message)
    elif error:
        logger.error(f"{message} | Error: {error}")
    else:
        logger.error(message)


def log_workflow_step(
    logger: logging.Logger,
    step: str,
    record_path: str,
    success: bool = True,
    details: Optional[str] = None
) -> None:
    """
    Standardized logging for create-then-attach workflow steps.

    Args:
        logger: Logger instance to use
        step: Workflow step (VALIDATE, WRITE, UPLOAD, URL, PATCH, SWEEP)
        record_path: Path of the record the workflow is building
        success: Whether the step was successful
        details: Additional details
    """
    message_parts = [f"WORKFLOW_{step.upper()}", f"Record: {record_path}"]

    if details:
        message_parts.append(f"Details: {details}")

    message = " | ".join(message_parts)

    if success:
        logger.info(message)
    else:
        logger.error(message)
