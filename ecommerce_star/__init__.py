"""
E-Commerce Clickstream Star Schema

Batch ETL that normalizes raw clickstream events into a star schema and
computes a fixed set of business metrics over it.
"""

__version__ = "1.0.0"
