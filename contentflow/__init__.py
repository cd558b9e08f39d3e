"""Node-graph workflow engine for content-production pipelines."""

__version__ = "1.0.0"
