"""Prometheus metrics for the application"""
from prometheus_client import Counter, Gauge, REGISTRY

# Webhook ingestion metrics
try:
    webhook_events_received_counter = Counter(
        'cameo_webhook_events_received_total',
        'Total number of webhook deliveries accepted after signature validation',
        ['source']
    )
except ValueError:
    webhook_events_received_counter = REGISTRY._names_to_collectors.get('cameo_webhook_events_received_total')

try:
    webhook_events_processed_counter = Counter(
        'cameo_webhook_events_processed_total',
        'Total number of webhook processing attempts by outcome',
        ['source', 'outcome']
    )
except ValueError:
    webhook_events_processed_counter = REGISTRY._names_to_collectors.get('cameo_webhook_events_processed_total')

# Retry scheduler metrics
try:
    webhook_retry_runs_counter = Counter(
        'cameo_webhook_retry_runs_total',
        'Total number of retry scheduler runs',
        ['status']
    )
except ValueError:
    webhook_retry_runs_counter = REGISTRY._names_to_collectors.get('cameo_webhook_retry_runs_total')

try:
    dead_letter_queue_gauge = Gauge(
        'cameo_webhook_dead_letter_queue_size',
        'Number of dead-lettered webhook events awaiting review'
    )
except ValueError:
    dead_letter_queue_gauge = REGISTRY._names_to_collectors.get('cameo_webhook_dead_letter_queue_size')

# Payout metrics
try:
    payout_transfers_counter = Counter(
        'cameo_payout_transfers_total',
        'Total number of payout transfers attempted',
        ['recipient_type', 'status']
    )
except ValueError:
    payout_transfers_counter = REGISTRY._names_to_collectors.get('cameo_payout_transfers_total')


def update_dead_letter_queue_gauge(db):
    """Refresh the dead letter gauge from the database (called on /metrics scrape)"""
    from app.models.webhook_event import DeadLetterEntry

    pending_review = db.query(DeadLetterEntry).filter(DeadLetterEntry.reviewed.is_(False)).count()
    dead_letter_queue_gauge.set(pending_review)
