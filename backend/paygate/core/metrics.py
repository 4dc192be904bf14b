"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY


def _counter(name: str, documentation: str, labelnames=()):
    # Re-importing the module (e.g. under test reloads) must not re-register
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


webhook_deliveries_counter = _counter(
    'paygate_webhook_deliveries_total',
    'Total number of Paystack webhook deliveries by outcome',
    ['outcome']
)

webhook_events_counter = _counter(
    'paygate_webhook_events_total',
    'Total number of verified webhook events by canonical kind',
    ['kind']
)

reconciliation_failures_counter = _counter(
    'paygate_reconciliation_step_failures_total',
    'Persistence steps skipped because the database was unavailable',
    ['step']
)

subscription_status_checks_counter = _counter(
    'paygate_subscription_status_checks_total',
    'Total number of subscription status checks by result',
    ['status']
)
