"""
E-Commerce Metrics Analytics Service
Configuration Module
"""
from .settings import (
    AnalyticsSettings,
    DatabaseSettings,
    KafkaSettings,
    MonitoringSettings,
    Settings,
    get_settings,
)

__all__ = [
    "AnalyticsSettings",
    "DatabaseSettings",
    "KafkaSettings",
    "MonitoringSettings",
    "Settings",
    "get_settings",
]
