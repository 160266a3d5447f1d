import logging
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional

from .datatypes import Unit, UNIT_TYPES, GlobalSettings
from .records import load_settings

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / 'data'
SETTINGS_PATH = DATA_DIR / 'settings.yaml'
UNITS_PATH = DATA_DIR / 'units.yaml'

_config_cache: Dict[Path, Any] = {}


def _load_yaml(path: Path) -> Dict[str, Any]:
    if path in _config_cache:
        return _config_cache[path]

    if not path.exists():
        raise FileNotFoundError(f"Config file not found at {path}")

    logger.debug(f"Loading config from {path}")
    with open(path, 'r', encoding='utf-8') as f:
        cfg = yaml.safe_load(f) or {}

    _config_cache[path] = cfg
    logger.info(f"Loaded {path.name} (version {cfg.get('metadata', {}).get('config_version', 'unknown')})")
    return cfg


def clear_cache():
    _config_cache.clear()


def load_default_settings(path: Optional[Path] = None) -> GlobalSettings:
    """Settings used before any have been saved to the store."""
    cfg = _load_yaml(Path(path) if path else SETTINGS_PATH)
    return load_settings(cfg)


def load_units(path: Optional[Path] = None) -> List[Unit]:
    cfg = _load_yaml(Path(path) if path else UNITS_PATH)
    out = []
    for u in cfg['units']:
        if u['type'] not in UNIT_TYPES:
            raise ValueError(f"Unit {u['id']} has unknown type {u['type']!r}")
        out.append(Unit(id=str(u['id']), name=str(u['name']), type=u['type']))
    return out
