"""
Loads the YAML vocabulary tables shipped with quasi.
"""
from pathlib import Path
from typing import Any, Dict

import yaml

TABLES_DIR = Path(__file__).parent / "tables"

_cache: Dict[str, Any] = {}


def load_table(name: str) -> Any:
    """Return the parsed contents of tables/<name>.yaml, cached per process."""
    if name not in _cache:
        path = TABLES_DIR / f"{name}.yaml"
        with path.open(encoding="utf-8") as f:
            _cache[name] = yaml.safe_load(f)
    return _cache[name]
