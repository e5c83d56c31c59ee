"""
Data Ingestion Module
"""
from .replay import rebuild_daily_sales
from .seed_db import seed_demo_data, seed_from_generator
from .stream_consumer import (
    ConsumerConfig,
    IngestorState,
    OverflowPolicy,
    RealtimeIngestor,
    create_realtime_ingestor,
    decode_metric_message,
)

__all__ = [
    "ConsumerConfig",
    "IngestorState",
    "OverflowPolicy",
    "RealtimeIngestor",
    "create_realtime_ingestor",
    "decode_metric_message",
    "rebuild_daily_sales",
    "seed_demo_data",
    "seed_from_generator",
]
