"""formative - staged product-planning workflow driven by LLM calls."""

__version__ = "0.1.0"
