"""
Gunicorn configuration: Uvicorn workers serving ecommerce_metrics.main:app.

Each worker runs its own runtime, so with Kafka enabled every worker joins
the consumer group and takes a share of the topic partitions.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", f"0.0.0.0:{os.getenv('API_PORT', '3002')}")
backlog = 2048

# Worker processes
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
timeout = 120
keepalive = 5
# long enough for the ingestor to drain its queue on shutdown
graceful_timeout = 45

proc_name = "ecommerce-metrics-api"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
