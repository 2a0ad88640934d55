"""Module containing utilities for logging, along with a standard logger."""

import logging
from typing import Any, Optional


def _get_logger(name: Optional[str] = "davmount") -> logging.Logger:
    stderr_output = logging.StreamHandler()

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    stderr_output.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.addHandler(stderr_output)

    return logger


def summarize(obj: Any, max_length: int = 255) -> str:
    """Return a stringified representation of the object up to the given length."""
    stringified_obj = str(obj)

    if len(stringified_obj) <= max_length:
        return stringified_obj
    else:
        return stringified_obj[: max_length - 3] + "..."


def summarize_options(options: dict, max_length: int = 64) -> str:
    """
    Summarize request options for logging.

    Binary payloads are replaced by their length and credentials are masked so that
    debug logs never contain file contents or passwords.
    """
    parts = []

    for key, value in sorted(options.items()):
        if isinstance(value, (bytes, bytearray, memoryview)):
            value = f"<{len(value)} bytes>"
        elif key == "password":
            value = "***"

        parts.append(f"{key}={summarize(value, max_length)}")

    return ", ".join(parts)


# Default logger
log = _get_logger()
