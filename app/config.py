import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "procurement_workflow.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-procurement-workflow")
    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "VND")

    QUOTATION_WEIGHT_PRICE = _float_env("QUOTATION_WEIGHT_PRICE", 0.7)
    QUOTATION_WEIGHT_LEAD_TIME = _float_env("QUOTATION_WEIGHT_LEAD_TIME", 0.2)
    QUOTATION_WEIGHT_PAYMENT_TERMS = _float_env("QUOTATION_WEIGHT_PAYMENT_TERMS", 0.1)
    QUOTATION_EQUAL_VALUE_SCORE = _float_env("QUOTATION_EQUAL_VALUE_SCORE", 100.0)
    PAYMENT_TERMS_NEUTRAL_SCORE = _float_env("PAYMENT_TERMS_NEUTRAL_SCORE", 50.0)

    BUDGET_APPROACHING_PERCENT = _float_env("BUDGET_APPROACHING_PERCENT", 80.0)
    BUDGET_CRITICAL_PERCENT = _float_env("BUDGET_CRITICAL_PERCENT", 90.0)
    BUDGET_EXCEEDED_PERCENT = _float_env("BUDGET_EXCEEDED_PERCENT", 100.0)

    NUMBER_GAP_FILL = _bool_env("NUMBER_GAP_FILL", False)
    NUMBER_SEQUENCE_WIDTH = _int_env("NUMBER_SEQUENCE_WIDTH", 4)

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL must be set in production.")
        if env == "production" and self.SECRET_KEY == "dev-secret-procurement-workflow":
            raise RuntimeError("Refusing to start in production with the development SECRET_KEY.")
