#!/usr/bin/env python3
"""
Celery worker script for the payment reconciliation service.
Run this script to start the worker (notifications) with an embedded beat
scheduler (periodic auto-verification).
"""

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.logging_config import setup_logging

    setup_logging()

    celery_app.start([
        "worker",
        "--beat",
        "--loglevel=info",
        "--concurrency=4",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ])
