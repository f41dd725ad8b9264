"""Prometheus metrics for SLUICE faucet.

Metrics:
- sluice_requests_total: Counter of airdrop requests by outcome
- sluice_tokens_distributed_total: Counter of tokens distributed
- sluice_workflow_actions_total: Counter of access-request workflow actions
- sluice_store_fallbacks_total: Counter of store calls served by the fallback
- sluice_reference_fetches_total: Counter of reference-set fetches by result
- sluice_funding_balance: Gauge of the funding wallet balance
- sluice_transfer_duration_seconds: Histogram of transfer submit-to-confirm time
"""

from prometheus_client import Counter, Gauge, Histogram

# Counters
REQUESTS = Counter(
    "sluice_requests_total",
    "Total number of airdrop requests",
    ["outcome"],
)

TOKENS_DISTRIBUTED = Counter(
    "sluice_tokens_distributed_total",
    "Total tokens distributed",
)

WORKFLOW_ACTIONS = Counter(
    "sluice_workflow_actions_total",
    "Total access-request workflow actions",
    ["action"],
)

STORE_FALLBACKS = Counter(
    "sluice_store_fallbacks_total",
    "Store operations served by the in-memory fallback",
    ["operation"],
)

REFERENCE_FETCHES = Counter(
    "sluice_reference_fetches_total",
    "Reference-set document fetches",
    ["result"],
)

# Gauges
FUNDING_BALANCE = Gauge(
    "sluice_funding_balance",
    "Current funding wallet balance",
)

# Histograms
TRANSFER_DURATION = Histogram(
    "sluice_transfer_duration_seconds",
    "Ledger transfer duration from submission to confirmation",
    buckets=(1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)
