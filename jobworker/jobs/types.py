from enum import Enum


class JobType(str, Enum):
    """Closed set of job types the worker knows how to run."""

    RUN_BACKTEST = "run_backtest"
    PAPER_EVAL = "paper_eval"
    REFRESH_PRICES = "refresh_prices"
    EVALUATE_ALERTS = "evaluate_alerts"
    GENERATE_DIGEST = "generate_digest"
    PARSE_STATEMENT = "parse_statement"

    @classmethod
    def parse(cls, value: str) -> "JobType | None":
        try:
            return cls(value)
        except ValueError:
            return None


class JobStatus(str, Enum):
    """Job status enumeration."""

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
