"""
# config/app_config.py

Module Contract
- Purpose: Central configuration loader/normalizer. Reads YAML (optional), resolves ${a.b} placeholders, fills defaults, applies env overrides and exposes module-level constants for every pipeline component.
- Inputs:
  - Optional YAML (config.yaml) at several search paths
  - Environment variables (OPENAI_API_KEY, CLASSIFIER_MODEL, CLASSIFIER_BASE_URL, CRISIS_* knobs)
- Outputs:
  - Module-level constants: model client settings, degradation timeouts, analytics batching, audit retention, session limits.
- Key functions:
  - resolve_vars(config) → dict: recursive placeholder resolution
  - load_yaml_config(config_path) → dict: tolerant loader with variable resolution
  - ensure_config_defaults(config) → dict: fills every section with safe defaults
- Side effects:
  - None beyond logging (directories are created lazily by the components that write).
- Error handling:
  - Logs and falls back to defaults if the file or a variable is missing or malformed.
"""
import os
import re
import yaml
from pathlib import Path
from utils.logging_utils import get_logger

logger = get_logger("config")

# --------------------------------------------------------------------
# Variable resolution
# --------------------------------------------------------------------

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_vars(config: dict) -> dict:
    """
    Recursively resolves placeholder variables in the config like ${section.key}.
    Unknown references are left untouched.
    """
    if not isinstance(config, dict):
        return config

    def lookup(path: str, conf: dict):
        node = conf
        for key in path.split("."):
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        return node

    def substitute(value, conf):
        if isinstance(value, str):
            for ref in _VAR_PATTERN.findall(value):
                replacement = lookup(ref, conf)
                if replacement is not None:
                    value = value.replace(f"${{{ref}}}", str(replacement))
            return value
        if isinstance(value, dict):
            return {k: substitute(v, conf) for k, v in value.items()}
        if isinstance(value, list):
            return [substitute(item, conf) for item in value]
        return value

    # Chained references need more than one pass
    for _ in range(5):
        before = repr(config)
        config = substitute(config, config)
        if repr(config) == before:
            break

    return config

# --------------------------------------------------------------------
# YAML loading
# --------------------------------------------------------------------

def load_yaml_config(config_path="config.yaml") -> dict:
    """Load configuration from a YAML file, trying several locations."""
    candidates = list(dict.fromkeys([
        Path(config_path),
        Path(__file__).parent / config_path,
        Path(__file__).parent.parent / config_path,
        Path.cwd() / config_path,
    ]))

    config = {}
    for path in candidates:
        if not path.exists():
            continue
        logger.info(f"Loading config from: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading config from {path}: {e}")
            config = {}
            continue
        if not isinstance(config, dict):
            logger.error("Config file is not a valid mapping; ignoring it.")
            config = {}
            continue
        break

    if not config:
        logger.warning(f"No usable config file in {[str(p) for p in candidates]}, using defaults.")

    return resolve_vars(config)

# --------------------------------------------------------------------
# Defaults
# --------------------------------------------------------------------

def ensure_config_defaults(config: dict) -> dict:
    """Ensure every section the pipeline reads exists with sane values."""
    app = config.setdefault("app", {})
    app.setdefault("name", "crisis-pipeline")
    app.setdefault("version", "1.0")
    app.setdefault("data_dir", "./data")
    app.setdefault("log_file", "crisis_pipeline.log")
    app.setdefault("log_level", "INFO")

    model = config.setdefault("model", {})
    model.setdefault("base_url", "https://openrouter.ai/api/v1")
    model.setdefault("name", "anthropic/claude-3.5-sonnet")
    model.setdefault("api_key", "")
    model.setdefault("request_timeout_s", 10.0)
    model.setdefault("max_tokens", 500)
    model.setdefault("simple_max_tokens", 200)

    degradation = config.setdefault("degradation", {})
    degradation.setdefault("claude_full_timeout_ms", 3000)
    degradation.setdefault("claude_simple_timeout_ms", 2000)
    degradation.setdefault("hybrid_timeout_ms", 1500)
    degradation.setdefault("rule_based_timeout_ms", 100)
    degradation.setdefault("total_budget_ms", 7000)

    analytics = config.setdefault("analytics", {})
    analytics.setdefault("max_batch_size", 10)
    analytics.setdefault("max_wait_time_ms", 5000)
    analytics.setdefault("retry_attempts", 3)
    analytics.setdefault("crisis_severity_alert", 9)

    audit = config.setdefault("audit", {})
    audit.setdefault("retention_years", 5)
    existing = audit.get("emergency_log_path")
    if not existing or "${" in str(existing):
        audit["emergency_log_path"] = os.path.join(app["data_dir"], "emergency_crisis_log.jsonl")

    sessions = config.setdefault("sessions", {})
    sessions.setdefault("history_limit", 40)
    sessions.setdefault("context_messages", 6)

    config.setdefault("resources", {}).setdefault("default_limit", 3)
    config.setdefault("handoff", {}).setdefault("recent_messages", 10)
    config.setdefault("escalation", {}).setdefault("history_limit", 1000)

    return config

# --------------------------------------------------------------------
# Main Loading Sequence (only load once!)
# --------------------------------------------------------------------

logger.info("Loading configuration...")
config = load_yaml_config("config.yaml")
config = ensure_config_defaults(config)

APP_NAME = config["app"]["name"]
VERSION = str(config["app"]["version"])
DATA_DIR = config["app"]["data_dir"]
LOG_FILE = config["app"]["log_file"]
LOG_LEVEL = config["app"]["log_level"]

MODEL_BASE_URL = config.get("model", {}).get("base_url")
MODEL_NAME = config.get("model", {}).get("name")
MODEL_API_KEY = config.get("model", {}).get("api_key", "")
MODEL_TIMEOUT_S = float(config.get("model", {}).get("request_timeout_s", 10.0))
MODEL_MAX_TOKENS = int(config.get("model", {}).get("max_tokens", 500))
MODEL_SIMPLE_MAX_TOKENS = int(config.get("model", {}).get("simple_max_tokens", 200))

# Per-strategy timeouts must decrease down the chain; the total budget caps
# the worst case where every strategy times out in turn.
STRATEGY_TIMEOUTS_MS = {
    "claude_full": int(config.get("degradation", {}).get("claude_full_timeout_ms", 3000)),
    "claude_simple": int(config.get("degradation", {}).get("claude_simple_timeout_ms", 2000)),
    "hybrid": int(config.get("degradation", {}).get("hybrid_timeout_ms", 1500)),
    "rule_based": int(config.get("degradation", {}).get("rule_based_timeout_ms", 100)),
}
DEGRADATION_TOTAL_BUDGET_MS = int(config.get("degradation", {}).get("total_budget_ms", 7000))

ANALYTICS_MAX_BATCH_SIZE = int(config.get("analytics", {}).get("max_batch_size", 10))
ANALYTICS_MAX_WAIT_TIME_MS = int(config.get("analytics", {}).get("max_wait_time_ms", 5000))
ANALYTICS_RETRY_ATTEMPTS = int(config.get("analytics", {}).get("retry_attempts", 3))
ANALYTICS_CRISIS_SEVERITY_ALERT = int(config.get("analytics", {}).get("crisis_severity_alert", 9))

AUDIT_RETENTION_YEARS = int(config.get("audit", {}).get("retention_years", 5))
AUDIT_EMERGENCY_LOG_PATH = config.get("audit", {}).get("emergency_log_path")

SESSION_HISTORY_LIMIT = int(config.get("sessions", {}).get("history_limit", 40))
SESSION_CONTEXT_MESSAGES = int(config.get("sessions", {}).get("context_messages", 6))
RESOURCE_DEFAULT_LIMIT = int(config.get("resources", {}).get("default_limit", 3))
ESCALATION_HISTORY_LIMIT = int(config.get("escalation", {}).get("history_limit", 1000))
HANDOFF_RECENT_MESSAGES = int(config.get("handoff", {}).get("recent_messages", 10))

# --------------------------------------------------------------------
# Environment overrides
# --------------------------------------------------------------------

MODEL_API_KEY = os.getenv("OPENAI_API_KEY", MODEL_API_KEY)
MODEL_NAME = os.getenv("CLASSIFIER_MODEL", MODEL_NAME)
MODEL_BASE_URL = os.getenv("CLASSIFIER_BASE_URL", MODEL_BASE_URL)
LOG_LEVEL = os.getenv("CRISIS_LOG_LEVEL", LOG_LEVEL)
AUDIT_EMERGENCY_LOG_PATH = os.getenv("CRISIS_EMERGENCY_LOG", AUDIT_EMERGENCY_LOG_PATH)
try:
    DEGRADATION_TOTAL_BUDGET_MS = int(os.getenv("CRISIS_TOTAL_BUDGET_MS", str(DEGRADATION_TOTAL_BUDGET_MS)))
    ANALYTICS_MAX_BATCH_SIZE = int(os.getenv("CRISIS_ANALYTICS_BATCH_SIZE", str(ANALYTICS_MAX_BATCH_SIZE)))
    ANALYTICS_MAX_WAIT_TIME_MS = int(os.getenv("CRISIS_ANALYTICS_WAIT_MS", str(ANALYTICS_MAX_WAIT_TIME_MS)))
except ValueError as e:
    logger.warning(f"Ignoring malformed CRISIS_* override: {e}")

logger.info(f"Config loaded successfully for {APP_NAME} v{VERSION}")
logger.info(f"Classifier model={MODEL_NAME} via {MODEL_BASE_URL} (api key configured: {bool(MODEL_API_KEY)})")
logger.debug(f"Strategy timeouts={STRATEGY_TIMEOUTS_MS} total budget={DEGRADATION_TOTAL_BUDGET_MS}ms")
