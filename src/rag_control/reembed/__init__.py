"""Re-embed jobs: job table, per-project worker and orchestrator."""
