#!/usr/bin/env python3
"""
Run one webhook retry pass. Meant to be called periodically by cron.

Usage:
    # Retry failed webhooks whose backoff has elapsed
    python webhook_retry_cron.py

    # Retry everything eligible right now, ignoring backoff
    python webhook_retry_cron.py --ignore-backoff --limit 50

Crontab:
    */5 * * * * cd /path/to/backend && python scripts/webhook_retry_cron.py
"""

import argparse
import sys
import os

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.logging import setup_logging
from app.tasks.webhook_retry import process_retryable_webhooks


def main():
    parser = argparse.ArgumentParser(description="Process retryable webhook events")
    parser.add_argument("--limit", type=int, default=None, help="Max events to attempt (default WEBHOOK_RETRY_BATCH_SIZE)")
    parser.add_argument("--ignore-backoff", action="store_true", help="Retry eligible events without waiting for backoff")
    args = parser.parse_args()

    setup_logging()

    try:
        result = process_retryable_webhooks(limit=args.limit, respect_backoff=not args.ignore_backoff)
    except Exception as e:
        print(f"❌ Webhook retry processing failed: {e}")
        return 1

    print(
        f"✅ Webhook retry processing completed: processed={result['processed']} "
        f"succeeded={result['succeeded']} failed={result['failed']} skipped={result['skipped']}"
    )
    if result["failed"] > 0:
        print(f"⚠️  {result['failed']} webhook(s) failed during retry processing")
    return 0


if __name__ == "__main__":
    sys.exit(main())
