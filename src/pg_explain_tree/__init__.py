"""
pg_explain_tree - enrich PostgreSQL EXPLAIN plans and find their critical path
"""

__version__ = "0.1.0"
