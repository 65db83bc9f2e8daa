"""Generation-job lifecycle: submission, polling, reconciliation, fallback, quota."""
