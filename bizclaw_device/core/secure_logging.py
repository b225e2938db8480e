"""
Log sanitization for user-supplied text (CWE-117 Log Injection, CWE-532 Clear-Text Logging).

Workflow payloads (post bodies, chat messages, contact names) end up in log
lines and result messages. They are stripped of control characters and
truncated before they get there.

Usage:
    from bizclaw_device.core.secure_logging import sanitize_for_log, preview_text

    logger.info(f"Typing into field: {sanitize_for_log(hint)}")
    message = f"Posted to Facebook: {preview_text(content)}"
"""

import re

_CONTROL_CHAR_RE = re.compile(r'[\x00-\x1f\x7f]')

PREVIEW_LENGTH = 50


def sanitize_for_log(val, max_len: int = 200) -> str:
    """Strip control characters and limit length to prevent log injection.

    Args:
        val: Value to sanitize (coerced to str).
        max_len: Maximum output length. Defaults to 200.

    Returns:
        Sanitized string safe for log output.
    """
    return _CONTROL_CHAR_RE.sub('', str(val))[:max_len]


def preview_text(val, length: int = PREVIEW_LENGTH) -> str:
    """First ``length`` characters of a payload followed by an ellipsis.

    The ellipsis is always appended, matching the summaries returned to the
    calling agent ("Sent to Lan: hello...").
    """
    return sanitize_for_log(val, max_len=length) + "..."


def mask_sensitive(val, visible_prefix: int = 4) -> str:
    """Mask sensitive values, showing only first N characters.

    Args:
        val: Sensitive value to mask (coerced to str).
        visible_prefix: Number of leading characters to show. Defaults to 4.

    Returns:
        Masked string (e.g., "a1b2****").
    """
    s = str(val)
    if len(s) <= visible_prefix:
        return '****'
    return s[:visible_prefix] + '****'
