"""Complexity scoring, model selection, and performance learning."""
