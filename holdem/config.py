"""Application configuration."""
import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass
class Config:
    """Application configuration loaded from environment variables."""
    
    # Server
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8765"))
    
    # Table defaults
    default_table_id: str = os.getenv("DEFAULT_TABLE_ID", "main")
    min_bet: int = int(os.getenv("MIN_BET", "20"))  # big blind; small blind is half
    starting_stack: int = int(os.getenv("STARTING_STACK", "1000"))
    min_players: int = int(os.getenv("MIN_PLAYERS", "2"))
    max_players: int = int(os.getenv("MAX_PLAYERS", "10"))
    
    # Turn timer (0 disables automatic check/fold)
    turn_time_seconds: int = int(os.getenv("TURN_TIME_SECONDS", "30"))
    
    # Delay before the next hand starts on its own (0 disables)
    auto_start_delay_seconds: int = int(os.getenv("AUTO_START_DELAY_SECONDS", "5"))
    
    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


config = Config()
