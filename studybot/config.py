"""Configuration management for the StudyBot backend."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from .models import SamplingParams

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)

SUPPORTED_VECTOR_BACKENDS = {"qdrant", "faiss"}

DEFAULT_PERSONA_TEXT = (
    "Assistant name: StudyBot\n\n"
    "Instruction:\n"
    "You are a virtual assistant dedicated to the students of the business "
    "school. Answer questions about programmes, campus services and the "
    "library using only the information you are given. Reply in the "
    "language of the student."
)


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")
    OPENAI_MAX_RETRIES: int = int(os.getenv("OPENAI_MAX_RETRIES", "2"))

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    DEFAULT_CHATBOT: str = os.getenv("DEFAULT_CHATBOT", "studybot")
    DEFAULT_PERSONA: str = os.getenv("DEFAULT_PERSONA", DEFAULT_PERSONA_TEXT)

    # Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

    # Generation sampling (low hallucination, low repetition)
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.4"))
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "500"))
    CHAT_TOP_P: float = float(os.getenv("CHAT_TOP_P", "0.9"))
    CHAT_FREQUENCY_PENALTY: float = float(os.getenv("CHAT_FREQUENCY_PENALTY", "0.3"))
    CHAT_PRESENCE_PENALTY: float = float(os.getenv("CHAT_PRESENCE_PENALTY", "0.2"))

    # Query Rewriting Configuration
    QUERY_REWRITE_MAX_TOKENS: int = int(os.getenv("QUERY_REWRITE_MAX_TOKENS", "100"))
    QUERY_REWRITE_TEMPERATURE: float = float(
        os.getenv("QUERY_REWRITE_TEMPERATURE", "0.3")
    )
    QUERY_REWRITE_WORD_THRESHOLD: int = int(
        os.getenv("QUERY_REWRITE_WORD_THRESHOLD", "10")
    )
    QUERY_REWRITE_HISTORY_TURNS: int = int(
        os.getenv("QUERY_REWRITE_HISTORY_TURNS", "6")
    )

    # RAG policy
    SIMILARITY_THRESHOLD: float = float(os.getenv("SIMILARITY_THRESHOLD", "0.55"))
    MIN_RELEVANT_DOCS: int = int(os.getenv("MIN_RELEVANT_DOCS", "1"))
    RETRIEVAL_TOP_K: int = int(os.getenv("RETRIEVAL_TOP_K", "5"))
    SEARCH_SCORE_THRESHOLD: float = float(os.getenv("SEARCH_SCORE_THRESHOLD", "0.4"))
    CANDIDATE_MULTIPLIER: int = int(os.getenv("CANDIDATE_MULTIPLIER", "2"))
    PROMPT_HISTORY_TURNS: int = int(os.getenv("PROMPT_HISTORY_TURNS", "6"))
    SESSION_HISTORY_LIMIT: int = int(os.getenv("SESSION_HISTORY_LIMIT", "10"))

    # Vector Store Configuration
    VECTOR_BACKEND: str = os.getenv("VECTOR_BACKEND", "qdrant").lower()
    QDRANT_URL: str = os.getenv("QDRANT_URL", "http://localhost:6333")
    QDRANT_API_KEY: str | None = os.getenv("QDRANT_API_KEY")
    QDRANT_COLLECTION: str = os.getenv("QDRANT_COLLECTION", "studybot")
    QDRANT_TIMEOUT: int = int(os.getenv("QDRANT_TIMEOUT", "30"))
    FAISS_INDEX_DIR: Path = Path(os.getenv("FAISS_INDEX_DIR", "data/faiss"))
    VECTOR_STORE_DB_PATH: Path = Path(
        os.getenv("VECTOR_STORE_DB_PATH", "data/vector_store.db")
    )

    # Relational store
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "data/studybot.db"))
    DB_MAX_RETRIES: int = int(os.getenv("DB_MAX_RETRIES", "3"))
    DB_RETRY_DELAY: float = float(os.getenv("DB_RETRY_DELAY", "2.0"))

    # Knowledge base ingestion
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "1000"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "200"))

    # Analytics pricing, USD per token
    TOKEN_PRICE_INPUT: float = float(os.getenv("TOKEN_PRICE_INPUT", "0.000006"))
    TOKEN_PRICE_OUTPUT: float = float(os.getenv("TOKEN_PRICE_OUTPUT", "0.000018"))

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "StudyBot/1.0")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENAI_API_KEY is not set or the vector backend
                settings are unusable.
        """
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ValueError(msg)

        if cls.VECTOR_BACKEND not in SUPPORTED_VECTOR_BACKENDS:
            msg = f"Unsupported vector store backend: {cls.VECTOR_BACKEND}"
            raise ValueError(msg)

        if cls.VECTOR_BACKEND == "qdrant" and not cls.QDRANT_URL:
            msg = "QDRANT_URL is required when VECTOR_BACKEND is 'qdrant'."
            raise ValueError(msg)

    @classmethod
    def sampling_params(cls) -> SamplingParams:
        """Build the sampling parameters used for answer generation.

        Returns:
            SamplingParams populated from the CHAT_* settings.
        """
        return SamplingParams(
            temperature=cls.CHAT_TEMPERATURE,
            max_tokens=cls.CHAT_MAX_TOKENS,
            top_p=cls.CHAT_TOP_P,
            frequency_penalty=cls.CHAT_FREQUENCY_PENALTY,
            presence_penalty=cls.CHAT_PRESENCE_PENALTY,
        )

    @classmethod
    def setup_logging(cls) -> None:
        """Configure console logging once at startup.

        The root level comes from LOG_LEVEL; the chattier client libraries
        (openai, httpx, qdrant_client) are held at OPENAI_LOG_LEVEL.
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        third_party_level = getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        for name in ("openai", "httpx", "qdrant_client"):
            logging.getLogger(name).setLevel(third_party_level)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        return headers


config = Config()
