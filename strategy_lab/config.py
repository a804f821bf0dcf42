import os
from dotenv import load_dotenv

load_dotenv(os.getenv("ENV_FILE", os.path.join(os.path.dirname(__file__), "..", "config", ".env")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # or 'json'

# Backtest defaults (used by the CLI when flags are omitted)
DEFAULT_SYMBOL = os.getenv("DEFAULT_SYMBOL", "EURUSD")
DEFAULT_PAYOUT = float(os.getenv("DEFAULT_PAYOUT", "92"))
DEFAULT_EXPIRY_SECONDS = int(os.getenv("DEFAULT_EXPIRY_SECONDS", "60"))
DEFAULT_INITIAL_BALANCE = float(os.getenv("DEFAULT_INITIAL_BALANCE", "1000"))
DEFAULT_BET_AMOUNT = float(os.getenv("DEFAULT_BET_AMOUNT", "10"))
DEFAULT_BET_TYPE = os.getenv("DEFAULT_BET_TYPE", "fixed")  # or 'percentage'

# Optimization
DEFAULT_MIN_TRADES = int(os.getenv("DEFAULT_MIN_TRADES", "10"))
LEADERBOARD_MIN_TRADES = int(os.getenv("LEADERBOARD_MIN_TRADES", "30"))
OPTIMIZER_N_JOBS = int(os.getenv("OPTIMIZER_N_JOBS", "1"))  # 0 = auto-detect
RANDOM_SEED = int(os.getenv("RANDOM_SEED", "42"))
