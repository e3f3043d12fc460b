"""scorelens - multi-model consensus and score explanations for LLM evaluation metrics."""

__version__ = "0.1.0"
