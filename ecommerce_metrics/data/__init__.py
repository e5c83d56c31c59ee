"""Synthetic data generation for demos and local development"""

from ecommerce_metrics.data.generators import DataGenerator, DemoDataset

__all__ = ["DataGenerator", "DemoDataset"]
