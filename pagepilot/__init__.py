"""
pagepilot: multi-provider LLM orchestration for the browser assistant.

Dispatches chat requests across heterogeneous model backends with ordered
fallback, per-provider circuit breaking, retry with backoff and cost/quota
accounting.
"""

__version__ = "0.1.0"
