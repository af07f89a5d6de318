import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import hcl2
import yaml

from resource_graph.errors import BindingsError

logger = logging.getLogger(__name__)


def _unquote(value: Any) -> Any:
    """Newer python-hcl2 releases keep the quotes around string literals"""
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    if isinstance(value, list):
        return [_unquote(item) for item in value]
    if isinstance(value, dict):
        return {_unquote(key): _unquote(item) for key, item in value.items()}
    return value


def parse_bindings(text: str, fmt: str, source: str = '<bindings>') -> Dict[str, Any]:
    try:
        if fmt == 'json':
            data = json.loads(text) if text.strip() else {}
        elif fmt == 'yaml':
            data = yaml.safe_load(text)
            data = {} if data is None else data
        elif fmt == 'tfvars':
            data = _unquote(hcl2.loads(text))
        else:
            raise BindingsError(f"Unsupported bindings format '{fmt}' for {source}")
    except BindingsError:
        raise
    except Exception as e:
        raise BindingsError(f"Could not parse bindings from {source}: {e}") from e

    if not isinstance(data, dict):
        raise BindingsError(f"Bindings in {source} must be a mapping at the top level")
    return data


def load_bindings(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a binding context from a .json, .yaml/.yml or .tfvars file"""
    path = Path(path)
    suffix = path.suffix.lower()
    fmt = {'.json': 'json', '.yaml': 'yaml', '.yml': 'yaml', '.tfvars': 'tfvars'}.get(suffix)
    if fmt is None:
        raise BindingsError(f"Cannot tell the bindings format of {path}; use .json, .yaml, .yml or .tfvars")
    try:
        text = path.read_text()
    except OSError as e:
        raise BindingsError(f"Cannot read bindings file {path}: {e}") from e
    bindings = parse_bindings(text, fmt, str(path))
    logger.debug("Loaded %d bindings from %s", len(bindings), path)
    return bindings
