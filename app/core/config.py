"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


# Milvus Cloud (from env)
MILVUS_URI: str = os.getenv("MILVUS_URI", "").strip()
MILVUS_TOKEN: str = os.getenv("MILVUS_TOKEN", "").strip()

# Hugging Face (embeddings / inference)
HF_API_KEY: str = os.getenv("HF_API_KEY", "").strip()

# Vector collection: default embedding dim (e.g. sentence-transformers/all-MiniLM-L6-v2 = 384)
VECTOR_DIM: int = 384

# Feed collection and embeddings
FEED_COLLECTION_NAME: str = os.getenv("FEED_COLLECTION_NAME", "feeds_embedded").strip() or "feeds_embedded"
HF_EMBED_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
EMBED_BATCH_SIZE: int = 32

# Store backends: "milvus" | "memory" for feeds, "sqlite" | "memory" for checkpoints
FEED_STORE_BACKEND: str = os.getenv("FEED_STORE_BACKEND", "milvus").strip().lower() or "milvus"
FEED_SEED_FILE: str = os.getenv("FEED_SEED_FILE", "").strip()
CHECKPOINT_BACKEND: str = os.getenv("CHECKPOINT_BACKEND", "sqlite").strip().lower() or "sqlite"
CHECKPOINT_DB_PATH: str = os.getenv("CHECKPOINT_DB_PATH", "data/checkpoints.db").strip() or "data/checkpoints.db"

# Retrieval
DEFAULT_RESULT_LIMIT: int = 50
MAX_RESULT_LIMIT: int = 200
# Milvus query() has no ORDER BY; exact lookups scan this many matches and sort client-side
EXACT_QUERY_SCAN_LIMIT: int = 16_384

# API timeouts (seconds)
EMBED_API_TIMEOUT: float = 30.0
LLM_API_TIMEOUT: float = 60.0
TURN_TIMEOUT: float = _env_float("TURN_TIMEOUT", 180.0)

# Hugging Face chat (fallback LLM)
HF_CHAT_URL: str = "https://router.huggingface.co/v1/chat/completions"

# Agent loop
RECURSION_LIMIT: int = _env_int("RECURSION_LIMIT", 15)
AGENT_MAX_TOKENS: int = 1024
FINAL_ANSWER_SENTINEL: str = "FINAL ANSWER"

# HTTP request limits
MAX_QUERY_LENGTH: int = 1000

# OpenAI (agent LLM). When set, the agent uses OpenAI instead of Hugging Face.
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_LLM_MODEL: str = (
    os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
)

# HF LLM for agent (fallback when OPENAI_API_KEY is not set). Router chat completions require a chat model.
HF_LLM_MODEL: str = (
    os.getenv("HF_LLM_MODEL", "meta-llama/Llama-3.3-70B-Instruct").strip()
    or "meta-llama/Llama-3.3-70B-Instruct"
)
