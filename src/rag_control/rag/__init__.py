"""Per-project RAG configuration: models, validation and the config store."""
