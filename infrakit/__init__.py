"""Thin async clients for GitHub pull requests and Cloud Mail provisioning.

Both clients route every remote call through the shared retry and
depagination helpers in ``infrakit.common``.
"""

__version__ = "0.1.0"
