# =============================================================================
# Doris Webhook - Package Initialization
# =============================================================================
"""
Doris Webhook

An HTTP ingestion bridge that validates incoming video events and writes
them to Apache Doris through the BE Stream Load API.
"""

__version__ = "1.0.0"
