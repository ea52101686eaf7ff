"""Token estimation for diagnostics.

Rough, language-aware heuristic: CJK ideographs run about 2 characters per
token, everything else about 4.
"""

import logging
import math
import re
from typing import Optional

logger = logging.getLogger(__name__)

_CJK_RE = re.compile(r"[一-龥]")


def estimate_tokens(text: str) -> int:
    """Estimate the token count of `text`."""
    if not text:
        return 0
    cjk_chars = len(_CJK_RE.findall(text))
    other_chars = len(text) - cjk_chars
    return math.ceil(cjk_chars / 2 + other_chars / 4)


def format_token_count(tokens: int) -> str:
    """Format a token count for logs: 950 -> '950', 1530 -> '1.5k'."""
    if tokens < 1000:
        return str(tokens)
    return f"{tokens / 1000:.1f}k"


def log_token_usage(
    component: str,
    prompt: str,
    response: str,
    log: Optional[logging.Logger] = None,
) -> dict[str, int]:
    """Log estimated prompt/response token usage and return the numbers."""
    prompt_tokens = estimate_tokens(prompt)
    response_tokens = estimate_tokens(response)
    usage = {
        "prompt_tokens": prompt_tokens,
        "response_tokens": response_tokens,
        "total": prompt_tokens + response_tokens,
    }
    (log or logger).info(
        f"[{component}] Token usage (estimated): "
        f"{format_token_count(prompt_tokens)} prompt + "
        f"{format_token_count(response_tokens)} response = "
        f"{format_token_count(usage['total'])}"
    )
    return usage
