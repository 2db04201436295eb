"""Core module - ERP-neutral infrastructure.

This module contains configuration, observability and the response cache.
It is intentionally ERP-agnostic.

Sankhya-specific logic (authentication, queries, record shapes) belongs in /connectors/.
"""

__version__ = "1.0.0"
