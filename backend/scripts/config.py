import os
import yaml
import re
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


# Load config from yaml file
def load_config(path: str | os.PathLike | None = None):
    config_path = Path(path or os.getenv("SCORING_CONFIG") or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    
    with open(config_path, 'r') as f:
        raw_config = f.read()
    
    # Substitute environment variables
    pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'
    def replace_var(match):
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.getenv(var_name, default_value)
    
    substituted_config = re.sub(pattern, replace_var, raw_config)
    return yaml.safe_load(substituted_config) or {}


def get_scoring_settings(config: dict | None = None) -> dict:
    config = config if config is not None else load_config()
    scoring = config.get("scoring", {}) or {}
    return {
        "score_precision": int(scoring.get("score_precision", 2)),
        "reminder_windows_hours": list(scoring.get("reminder_windows_hours", [24, 1])),
    }
