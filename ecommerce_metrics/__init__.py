"""
E-Commerce Metrics

Analytics query service over a metric store, with a real-time ingestion
loop feeding minute-level metrics.
"""

__version__ = "1.0.0"
