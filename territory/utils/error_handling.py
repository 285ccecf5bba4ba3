"""
Error Handling Utilities

Bad traces are data: they surface as ValidationVerdict errors and warnings.
The exceptions here are for caller bugs (precondition failures), persistence
conflicts and configuration problems, which must fail loudly.
"""

import logging
from typing import Any, Callable, Optional, Tuple, Type
from functools import wraps
import traceback

logger = logging.getLogger(__name__)


class PreconditionError(ValueError):
    """Raised when a caller passes input that violates an API precondition."""
    pass


class EmptyInputError(PreconditionError):
    """Raised when an operation requires a non-empty point set."""
    pass


class InvalidTileIdError(PreconditionError):
    """Raised when a tile id is not a valid geohash at the grid precision."""
    pass


class CoordinateRangeError(PreconditionError):
    """Raised when a coordinate lies outside the WGS84 range."""
    pass


class InvalidOwnershipError(PreconditionError):
    """Raised when a tile ownership row breaks the owner/strength invariant."""
    pass


class ClaimConflictError(Exception):
    """
    Raised when ownership updates could not be committed because the tiles
    changed since the snapshot was read.

    Attributes:
        tile_ids: Tiles whose stored state no longer matched the snapshot
    """
    def __init__(self, message: str, tile_ids: Optional[Tuple[str, ...]] = None):
        self.message = message
        self.tile_ids = tile_ids or ()
        super().__init__(self.message)


class RulebookError(ValueError):
    """Raised when claim_rules.yml is malformed."""
    pass


def handle_specific_exceptions(
    exceptions: Tuple[Type[Exception], ...],
    error_context: str = "",
    log_level: int = logging.ERROR,
    reraise: bool = True
) -> Callable:
    """
    Decorator for handling specific exceptions with context.
    
    Args:
        exceptions: Tuple of exception types to catch
        error_context: Context string for error messages
        log_level: Logging level for errors
        reraise: Whether to reraise the exception
        
    Returns:
        Decorator function
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except exceptions as e:
                context = f"{error_context}: " if error_context else ""
                logger.log(log_level, f"{context}{type(e).__name__}: {e}")
                logger.debug(f"Error details for {func.__name__}: {traceback.format_exc()}")
                if reraise:
                    raise
                return None
        return wrapper
    return decorator


def log_function_entry(func: Callable) -> Callable:
    """
    Decorator to log function entry and exit.
    
    Args:
        func: Function to log
        
    Returns:
        Wrapped function with logging
    """
    @wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        logger.debug(f"Entering {func.__name__}")
        try:
            result = func(*args, **kwargs)
            logger.debug(f"Exiting {func.__name__} successfully")
            return result
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}")
            raise
    return wrapper
