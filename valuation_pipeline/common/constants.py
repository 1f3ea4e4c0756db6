"""Application constants."""

USER_AGENT = "ie-valuations/1.0 (+research; contact: configured-email)"
STAGES = (
    "fetch",
    "aggregate",
    "export",
    "plot",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "authority",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
