from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter()

# Metrics Definitions
QUEUE_DEPTH = Gauge('task_queue_depth', 'Number of live tasks per status', ['status'])
TASKS_CREATED_TOTAL = Counter('tasks_created_total', 'Total tasks inserted')
TASK_TRANSITIONS_TOTAL = Counter(
    'task_transitions_total',
    'Conditional status transitions',
    ['from_status', 'to_status', 'result']  # result=ok|conflict
)
TASK_AGE_AT_LEASE = Histogram(
    'task_age_at_lease_seconds',
    'Time from task creation to lease',
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0]
)

TASK_RUNNER_OUTCOMES = Counter(
    "task_runner_outcomes_total",
    "Outcomes reported by the task runner",
    ["outcome"]  # success|failure|pending|error
)

BATCH_SIZE = Histogram(
    "task_batch_size",
    "Number of tasks selected per batch",
    buckets=[0, 1, 2, 5, 10, 20, 50]
)

ACTIVATIONS_TOTAL = Counter(
    "worker_activations_total",
    "Worker activations by exit state",
    ["exit"]  # idle_exit|time_exit|error
)

HANDOFFS_TOTAL = Counter(
    "worker_handoffs_total",
    "Hand-off signals published by worker activations"
)

TASKS_PURGED_TOTAL = Counter(
    "tasks_purged_total",
    "Total tasks removed by expiry"
)

LEASES_RECLAIMED_TOTAL = Counter(
    "leases_reclaimed_total",
    "Total stale TAKEN tasks returned to PENDING"
)

SIGNALS_TOTAL = Counter(
    "trigger_signals_total",
    "Signals received by the trigger relay",
    ["action"]  # dispatched|skipped|invalid
)

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
