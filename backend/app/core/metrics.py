"""Prometheus metrics for the application"""
from prometheus_client import Counter, REGISTRY

# Token ledger metrics
try:
    token_debits_counter = Counter(
        'repurposely_token_debits_total',
        'Total number of token debits',
        ['transaction_type', 'status']
    )
except ValueError:
    token_debits_counter = REGISTRY._names_to_collectors.get('repurposely_token_debits_total')

try:
    token_refunds_counter = Counter(
        'repurposely_token_refunds_total',
        'Total number of compensating token credits after failed generations'
    )
except ValueError:
    token_refunds_counter = REGISTRY._names_to_collectors.get('repurposely_token_refunds_total')

try:
    token_grants_counter = Counter(
        'repurposely_token_grants_total',
        'Total number of token allowance grants',
        ['transaction_type']
    )
except ValueError:
    token_grants_counter = REGISTRY._names_to_collectors.get('repurposely_token_grants_total')

# Generation metrics
try:
    generation_requests_counter = Counter(
        'repurposely_generation_requests_total',
        'Total number of generation provider calls',
        ['kind', 'status']
    )
except ValueError:
    generation_requests_counter = REGISTRY._names_to_collectors.get('repurposely_generation_requests_total')

# Billing metrics
try:
    webhook_events_counter = Counter(
        'repurposely_webhook_events_total',
        'Total number of Stripe webhook events received',
        ['event_type', 'status']
    )
except ValueError:
    webhook_events_counter = REGISTRY._names_to_collectors.get('repurposely_webhook_events_total')

# Auth metrics
try:
    auth_attempts_counter = Counter(
        'repurposely_auth_attempts_total',
        'Total number of access token validations',
        ['status', 'source']
    )
except ValueError:
    auth_attempts_counter = REGISTRY._names_to_collectors.get('repurposely_auth_attempts_total')
