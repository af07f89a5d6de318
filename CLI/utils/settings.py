import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from resource_graph.equivalence import DEFAULT_MAX_RESOURCES, DEFAULT_STEP_BUDGET

logger = logging.getLogger(__name__)

HOME_ENV = 'TFPARITY_HOME'

DEFAULT_CONFIG = {
    'max_resources': DEFAULT_MAX_RESOURCES,
    'step_budget': DEFAULT_STEP_BUDGET,
    'deadline_seconds': 10,
    'log_level': 'INFO',
    'colors': True,
    'provider_schema': None,
}


@dataclass
class Settings:
    max_resources: int = DEFAULT_MAX_RESOURCES
    step_budget: int = DEFAULT_STEP_BUDGET
    deadline_seconds: Optional[float] = 10
    log_level: str = 'INFO'
    colors: bool = True
    provider_schema: Optional[str] = None

    def override(self, **options: Any) -> 'Settings':
        """Command line values win over the file; ``None`` means 'not given'"""
        for name, value in options.items():
            if value is not None:
                setattr(self, name, value)
        return self


def config_dir() -> Path:
    return Path(os.environ.get(HOME_ENV) or os.path.join(os.path.expanduser('~'), '.tfparity'))


def config_file() -> Path:
    return config_dir() / 'config.yaml'


def init_config_dir() -> Path:
    """Create the settings directory and a default config.yaml if missing"""
    directory = config_dir()
    os.makedirs(directory, exist_ok=True)
    path = config_file()
    if not path.exists():
        with open(path, 'w') as f:
            yaml.dump(DEFAULT_CONFIG, f)
        logger.info("Wrote default settings to %s", path)
    return path


def load_settings(path: Optional[Path] = None) -> Settings:
    path = path or config_file()
    data: Dict[str, Any] = {}
    if path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: top level is not a mapping", path)
            data = {}
    known = {f.name for f in fields(Settings)}
    for key in set(data) - known:
        logger.warning("Unknown setting '%s' in %s", key, path)
    return Settings(**{key: value for key, value in data.items() if key in known})
