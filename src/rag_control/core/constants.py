"""Central constants shared across the control plane."""

from typing import Final

# Payload keys for chunk points in the Qdrant chunk collection.
K_PROJECT_ID: Final[str] = "project_id"
K_DOCUMENT_ID: Final[str] = "document_id"
K_CHUNK_INDEX: Final[str] = "chunk_index"
K_TEXT: Final[str] = "text"

# Embedding providers known to the model catalog.
PROVIDER_OPENAI: Final[str] = "openai"
PROVIDER_OLLAMA: Final[str] = "ollama"

# Payload keys for records in the Qdrant state collection.
K_STATE_KIND: Final[str] = "kind"
K_STATE_KEY: Final[str] = "key"
K_STATE_DATA: Final[str] = "data"

# Record kinds kept in the state collection.
STATE_SECRET: Final[str] = "secret"
STATE_CREDENTIAL: Final[str] = "credential"
STATE_RAG_CONFIG: Final[str] = "rag_config"
STATE_REEMBED_JOB: Final[str] = "reembed_job"
