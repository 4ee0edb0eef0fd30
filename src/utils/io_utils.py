# utils/io_utils.py
import os
import yaml


def default_config_path() -> str:
    # project root = parent of utils/ (i.e. src/)
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return os.path.join(project_root, "models", "forecast.yaml")


def load_config(path: str = None) -> dict:
    """
    Load the forecasting configuration YAML.
    If no path provided, defaults to models/forecast.yaml under the project root.
    """
    if path is None:
        path = default_config_path()

    if not os.path.exists(path):
        raise FileNotFoundError(f"forecast config not found at: {path}")
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    return cfg or {}


def ensure_parent_dir(path: str) -> str:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    return path
