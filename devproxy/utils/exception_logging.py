"""
Helpers for logging exceptions raised by outbound fetches and the server
runtime, including exception groups raised from anyio task groups.
"""

import logging


def _safe_str(obj) -> str:
    """
    Convert an object to a string without ever raising.

    Args:
        obj: The object to convert

    Returns:
        ``str(obj)``, falling back to ``repr`` and then to the type name
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: Exception) -> str:
    """
    Describe an exception in one line, naming the type of the exception and
    of any sub-exceptions. Never raises.

    Args:
        exception: The exception to format

    Returns:
        A formatted description such as ``ConnectError: [Errno 111] ...``
    """
    if exception is None:
        return "None"

    text = _safe_str(exception)
    message = f"{type(exception).__name__}: {text}" if text else type(exception).__name__

    subs = _sub_exceptions(exception)
    if subs:
        joined = "; ".join(format_exception_message(sub) for sub in subs)
        message = f"{message} (Sub-exceptions: {joined})"
    return message


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, followed by one entry per
    sub-exception when it is an exception group. Logging failures are
    swallowed so that error reporting can never break a request.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g. "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        subs = _sub_exceptions(exception)
        if subs:
            logger.log(
                level,
                f"{safe_prefix} Exception with {len(subs)} sub-exceptions: "
                f"{_safe_str(exception)}",
            )
            for i, sub in enumerate(subs):
                logger.log(
                    level,
                    f"{safe_prefix} Sub-exception {i + 1}: {format_exception_message(sub)}",
                    exc_info=sub,
                )
        else:
            logger.log(
                level,
                f"{safe_prefix} Exception: {format_exception_message(exception)}",
                exc_info=exception if exception is not None else False,
            )
    except Exception:
        try:
            logger.log(logging.ERROR, f"{prefix} Exception (logging failed)")
        except Exception:
            pass
