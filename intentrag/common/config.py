"""
Configuration Management for intentrag

Loads configuration from ~/.intentrag/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("intentrag.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".intentrag"
CONFIG_PATH = CONFIG_DIR / "config.json"
INTENT_TREE_PATH = CONFIG_DIR / "intent_tree.json"


@dataclass
class LLMConfig:
    """LLM provider configuration used by the intent scorer"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = "BAAI/bge-small-zh-v1.5"


@dataclass
class VectorStoreConfig:
    """Milvus configuration (REST v2 API)"""
    endpoint: str = "http://localhost:19530"
    token: str = ""
    default_collection: str = "rag_default_store"
    anns_field: str = "embedding"
    metric_type: str = "COSINE"
    ef: int = 128
    timeout: float = 10.0


@dataclass
class KeywordConfig:
    """Elasticsearch configuration for the keyword channel"""
    endpoint: str = "http://localhost:9200"
    index: str = "rag_chunks"
    api_key: str = ""
    text_field: str = "content"
    id_field: str = "doc_id"
    timeout: float = 10.0


@dataclass
class RerankConfig:
    """Rerank service configuration (DashScope text-rerank)"""
    endpoint: str = "https://dashscope.aliyuncs.com/api/v1/services/rerank/text-rerank/text-rerank"
    api_key: str = ""
    model: str = "gte-rerank"
    timeout: float = 10.0


@dataclass
class IntentConfig:
    """Intent tree and classifier configuration"""
    tree_path: str = str(INTENT_TREE_PATH)
    refresh_interval: float = 300.0  # seconds; 0 disables periodic refresh
    min_score: float = 0.35
    max_intent_count: int = 3
    classify_timeout: float = 15.0
    batch_size: int = 0  # 0 = score every candidate in one call
    prefilter_max_candidates: int = 0  # 0 = no keyword pre-filter


@dataclass
class RetrieverConfig:
    """Channel fan-out and post-processing configuration"""
    default_top_k: int = 5
    min_search_top_k: int = 20
    search_top_k_multiplier: int = 3
    channel_timeout: float = 8.0
    rerank_timeout: float = 10.0
    intent_directed_enabled: bool = True
    keyword_enabled: bool = True
    global_vector_enabled: bool = True
    score_margin_enabled: bool = False
    score_margin_ratio: float = 0.75
    rerank_limit_enabled: bool = False
    rerank_limit_multiplier: int = 2


@dataclass
class IntentRagConfig:
    """Main intentrag configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    keyword: KeywordConfig = field(default_factory=KeywordConfig)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    intent: IntentConfig = field(default_factory=IntentConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_section(cls, data: dict, key: str):
    """Build a section dataclass from ``data[key]``, ignoring unknown keys."""
    section_data = data.get(key) or {}
    defaults = cls()
    values = {
        name: section_data.get(name, getattr(defaults, name))
        for name in defaults.__dataclass_fields__
    }
    return cls(**values)


def _section_dict(section) -> dict:
    return {name: getattr(section, name) for name in section.__dataclass_fields__}


# Environment variable -> (section, attribute, converter)
_ENV_OVERRIDES = {
    "INTENTRAG_LLM_PROVIDER": ("llm", "provider", str),
    "ANTHROPIC_API_KEY": ("llm", "anthropic_api_key", str),
    "ANTHROPIC_MODEL": ("llm", "anthropic_model", str),
    "OPENAI_API_KEY": ("llm", "openai_api_key", str),
    "OPENAI_MODEL": ("llm", "openai_model", str),
    "GOOGLE_API_KEY": ("llm", "google_api_key", str),
    "GEMINI_API_KEY": ("llm", "google_api_key", str),
    "GOOGLE_MODEL": ("llm", "google_model", str),
    "EMBEDDING_MODEL": ("embedding", "model", str),
    "MILVUS_ENDPOINT": ("vector_store", "endpoint", str),
    "MILVUS_TOKEN": ("vector_store", "token", str),
    "MILVUS_COLLECTION": ("vector_store", "default_collection", str),
    "ES_ENDPOINT": ("keyword", "endpoint", str),
    "ES_INDEX": ("keyword", "index", str),
    "ES_API_KEY": ("keyword", "api_key", str),
    "DASHSCOPE_API_KEY": ("rerank", "api_key", str),
    "RERANK_MODEL": ("rerank", "model", str),
    "INTENT_TREE_PATH": ("intent", "tree_path", str),
    "INTENT_MIN_SCORE": ("intent", "min_score", float),
    "RETRIEVER_TOP_K": ("retriever", "default_top_k", int),
    "CHANNEL_TIMEOUT": ("retriever", "channel_timeout", float),
}

# Secrets that must never be written back to disk when sourced from env
_SECRET_KEYS = {
    "llm.anthropic_api_key",
    "llm.openai_api_key",
    "llm.google_api_key",
    "vector_store.token",
    "keyword.api_key",
    "rerank.api_key",
}


def load_config() -> IntentRagConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.intentrag/config.json)
    3. Default values
    """
    config = IntentRagConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_section(LLMConfig, data, "llm")
            config.embedding = _parse_section(EmbeddingConfig, data, "embedding")
            config.vector_store = _parse_section(VectorStoreConfig, data, "vector_store")
            config.keyword = _parse_section(KeywordConfig, data, "keyword")
            config.rerank = _parse_section(RerankConfig, data, "rerank")
            config.intent = _parse_section(IntentConfig, data, "intent")
            config.retriever = _parse_section(RetrieverConfig, data, "retriever")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    for env_var, (section_name, attr, convert) in _ENV_OVERRIDES.items():
        val = os.getenv(env_var)
        if not val:
            continue
        try:
            setattr(getattr(config, section_name), attr, convert(val))
        except ValueError:
            logger.warning("Ignoring invalid value for %s: %r", env_var, val)
            continue
        config._env_sourced_keys.add(f"{section_name}.{attr}")

    return config


def save_config(config: IntentRagConfig) -> None:
    """Save configuration to file.

    Secret fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    data = {
        "llm": _section_dict(config.llm),
        "embedding": _section_dict(config.embedding),
        "vector_store": _section_dict(config.vector_store),
        "keyword": _section_dict(config.keyword),
        "rerank": _section_dict(config.rerank),
        "intent": _section_dict(config.intent),
        "retriever": _section_dict(config.retriever),
    }
    for dotted in _SECRET_KEYS & env_sourced:
        section_name, attr = dotted.split(".", 1)
        data[section_name][attr] = ""

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
