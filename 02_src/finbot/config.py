"""Project-level configuration and path helpers."""

from datetime import timedelta
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
ATTACHMENTS_DIR = DATA_DIR / "expense_attachments"
DEFAULT_DB_PATH = DATA_DIR / "finance_bot.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Conversation rules
IDLE_THRESHOLD = timedelta(minutes=15)
VALUE_TOLERANCE = 0.10
MAX_RECEIPT_CANDIDATES = 10

# Draft defaults
DEFAULT_CATEGORY = "Outros"
NOT_APPLICABLE = "N/A"
PAYMENT_METHODS_EXAMPLES = (
    "Pix, Dinheiro, Débito, Crédito (Visa), Crédito (Master), Boleto, Transferência"
)

DISPLAY_TIMEZONE = "America/Sao_Paulo"
DEFAULT_LLM_MODEL = "claude-3-5-sonnet-20241022"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate
