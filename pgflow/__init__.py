"""
pgflow: run groups of worker processes in parallel and decide, per group,
what happens to the siblings when one of them fails.
"""

__version__ = "0.1.0"
