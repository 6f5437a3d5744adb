"""
Base stage class for the transcript acquisition pipeline.

This module provides the base class every pipeline stage inherits from,
ensuring consistent logging, timing and error wrapping across stages.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from core.errors import TranscriptPipelineError, classify_error


class BaseStage:
    """
    Base class for pipeline stages.

    Provides stage-scoped logging and the conversion of unexpected
    exceptions into pipeline errors that carry the stage name.

    Attributes:
        name: Stage name, also used in log records and error context
        logger: Logger named worker.<name>
    """

    def __init__(self, name: str, log_level: Optional[str] = None) -> None:
        """
        Initialize the base stage.

        Args:
            name: Human-readable name for this stage
            log_level: Optional logging level override for this stage's logger
        """
        self.name = name
        self.logger = self._setup_logger(log_level)

    def _setup_logger(self, log_level: Optional[str]) -> logging.Logger:
        # Handlers are installed once by core.logging_setup.configure_logging
        logger = logging.getLogger(f"worker.{self.name}")
        if log_level:
            logger.setLevel(getattr(logging, log_level.upper()))
        return logger

    @contextmanager
    def _execution_timer(self, video_id: Optional[str] = None):
        """Context manager to track execution time."""
        start_time = time.time()
        try:
            yield
        finally:
            execution_time = time.time() - start_time
            self.log_with_context(
                f"Execution completed in {execution_time:.2f}s",
                level="DEBUG",
                extra_context={"video_id": video_id} if video_id else None,
            )

    def log_with_context(
        self,
        message: str,
        level: str = "INFO",
        extra_context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log message with stage context and optional additional context.

        Args:
            message: Log message
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            extra_context: Additional context to include in log
        """
        context_msg = f"[{self.name}] {message}"

        if extra_context:
            context_parts = [f"{k}={v}" for k, v in extra_context.items()]
            context_msg += f" | Context: {', '.join(context_parts)}"

        log_method = getattr(self.logger, level.lower())
        log_method(context_msg)

    def stage_error(
        self,
        error: BaseException,
        video_id: Optional[str] = None,
        stage: Optional[str] = None,
    ) -> TranscriptPipelineError:
        """
        Normalize an exception escaping this stage.

        Pipeline errors keep their category; anything else is classified and
        falls back to UnknownPipelineError with the original message.
        """
        return classify_error(error, video_id=video_id, stage=stage or self.name)
