from __future__ import annotations


class StepwrightError(Exception):
    """Base exception class for all stepwright-specific errors.

    This is the root of the stepwright exception hierarchy. Catching it at the
    CLI boundary handles every error raised deliberately by the engine while
    letting system exceptions propagate naturally.

    Attributes:
        message: Human-readable error message describing what went wrong.

    Example:
        ```python
        try:
            await engine.execute()
        except StepwrightError as e:
            logger.error(f"stepwright error: {e.message}")
            sys.exit(1)
        ```
    """

    def __init__(self, message: str) -> None:
        """Initialize the StepwrightError.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)
