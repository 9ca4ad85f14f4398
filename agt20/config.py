from pydantic import validator
from pydantic_settings import BaseSettings
from typing import Optional, Dict, Any, List


class Settings(BaseSettings):
    # Database
    DB_USER: str = "user"
    DB_PASSWORD: str = "password"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "agt20"
    DATABASE_URL: Optional[str] = None

    @validator("DATABASE_URL", pre=True)
    def assemble_db_connection(cls, v: Optional[str], values: Dict[str, Any]) -> Any:
        if isinstance(v, str):
            return v
        return (
            f"postgresql+psycopg2://{values.get('DB_USER')}:{values.get('DB_PASSWORD')}@"
            f"{values.get('DB_HOST')}:{values.get('DB_PORT')}/{values.get('DB_NAME')}"
        )

    DB_POOL_SIZE: int = 5

    # Protocol
    PROTOCOL_ID: str = "agt-20"
    MAX_TICKER_LENGTH: int = 10

    # Mint rate limits
    MINT_COOLDOWN_SECONDS: int = 2 * 60 * 60
    MAX_MINTS_PER_WINDOW: int = 3
    MINT_QUOTA_WINDOW_SECONDS: int = 24 * 60 * 60

    # Tokens whose mints must carry a New Year blessing
    BLESSING_REQUIRED_TOKENS: List[str] = ["CNY", "RED-POCKET", "HONGBAO", "红包"]

    # Moltbook feed
    FEED_API_URL: str = "https://www.moltbook.com/api/v1"
    FEED_WEB_URL: str = "https://www.moltbook.com"
    FEED_TOPIC: str = "agt20"
    FEED_PAGE_SIZE: int = 100
    FEED_TIMEOUT: float = 30.0
    RECENT_WINDOW_SIZE: int = 100
    BACKFILL_MAX_POSTS: int = 10000
    BACKFILL_PAGE_DELAY: float = 1.0

    # Blessing classifier (OpenAI-compatible chat completions)
    NVIDIA_API_KEY: Optional[str] = None
    NVIDIA_API_URL: str = "https://integrate.api.nvidia.com/v1/chat/completions"
    CLASSIFIER_MODEL: str = "nvidia/llama-3.1-nemotron-70b-instruct"
    CLASSIFIER_TIMEOUT: float = 15.0

    # Claim contract (HashKey Chain testnet)
    CHAIN_RPC_URL: str = "https://testnet.hsk.xyz"
    CLAIM_FACTORY_ADDRESS: str = "0x1902418523A51476c43c6e80e55cB9d781dFB7e2"
    CHAIN_RPC_TIMEOUT: float = 20.0

    # Run loop
    CURSOR_OVERLAP_SECONDS: int = 60 * 60
    LOCK_TTL_SECONDS: int = 600
    INDEX_INTERVAL: int = 60

    # Monitoring
    LOG_LEVEL: str = "INFO"

    # Error handling
    MAX_RETRIES: int = 3
    RETRY_DELAY: int = 5
    STOP_ON_ERROR: bool = False

    # API
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8083
    CRON_SECRET: Optional[str] = None

    # Cache Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL: int = 30

    INDEXER_VERSION: str = "1.0.0"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
