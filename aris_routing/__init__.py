"""Routing engine for AI-assisted task processing: gate, route, assemble, complete, learn."""

__version__ = "0.1.0"
