"""httpdoc core - config loading, .env loading and environment files."""

import json
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from httpdoc.errors import EnvironmentFileError

GLOBAL_DIR = Path.home() / ".httpdoc"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"

CWD_CONFIG_CANDIDATES = [
    ".httpdoc.yaml",
    ".httpdoc.yml",
    "httpdoc.yaml",
    "httpdoc.yml",
]

DEFAULT_ENVIRONMENT = "dev"
DEFAULT_ENVIRONMENT_FILE = "http-client.env.json"
SHARED_ENVIRONMENT = "$shared"


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates, else default."""
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (no fallthrough if missing)
      2. .httpdoc.yaml (variants) in CWD
      3. ~/.httpdoc/config.yaml
    """
    if config_file:
        return resolve_path([Path(config_file)])
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_config(config_path: str | Path | None) -> dict:
    """Load YAML config file. Returns empty defaults if not found.

    Stores '_config_dir' in the returned dict so relative paths in the
    config (environment_file, env_file) resolve against the config file.
    """
    if config_path is None:
        return {"defaults": {}, "_config_dir": None}
    path = Path(config_path)
    if not path.exists():
        return {"defaults": {}, "_config_dir": None}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return {
        "defaults": data.get("defaults") or {},
        "_config_dir": path.resolve().parent,
    }


def config_relative_path(value: str | None, config: dict) -> Path | None:
    """Resolve a path from the config relative to the config file's directory."""
    if not value:
        return None
    p = Path(value)
    config_dir = config.get("_config_dir")
    if not p.is_absolute() and config_dir:
        p = Path(config_dir) / p
    return p


def load_env(env_file: str | Path | None, base_dir: str | Path = ".") -> dict[str, str]:
    """Load a .env file and merge it over os.environ.

    This is the mapping ``{{$processEnv NAME}}`` and ``{{$dotEnv NAME}}``
    read from.
    """
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(base_dir) / env_file
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


def load_environment(path: str | Path | None, name: str | None = None) -> dict[str, str]:
    """Read an environment file and flatten it for one environment.

    The file is a JSON object of environments plus an optional ``$shared``
    block:

        {
          "$shared": {"apiVersion": "v2"},
          "dev": {"baseUrl": "http://localhost:5000"},
          "prod": {"apiKey": {"provider": "AzureKeyVault", "secretName": "ApiKey"}}
        }

    ``$shared`` values are overlaid by the named environment. Secrets become
    ``{{secret:<provider>:<secretName>}}`` placeholders for a later stage.
    A missing file yields an empty map.
    """
    if path is None:
        return {}
    path = Path(path)
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            content = f.read()
        data = json.loads(content) if content.strip() else {}
    except ValueError as e:
        raise EnvironmentFileError(f"Invalid environment file {path}: {e}") from e
    if not isinstance(data, dict):
        raise EnvironmentFileError(f"Invalid environment file {path}: expected a JSON object")

    result: dict[str, str] = {}
    for block_name in (SHARED_ENVIRONMENT, name or DEFAULT_ENVIRONMENT):
        block = data.get(block_name) or {}
        if not isinstance(block, dict):
            continue
        for key, value in block.items():
            result[key] = environment_value(value)
    return result


def list_environments(path: str | Path | None) -> list[str]:
    """Names of the environments defined in an environment file."""
    if path is None or not Path(path).exists():
        return []
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except ValueError as e:
        raise EnvironmentFileError(f"Invalid environment file {path}: {e}") from e
    if not isinstance(data, dict):
        return []
    return [k for k in data if k != SHARED_ENVIRONMENT]


def environment_value(value: Any) -> str:
    """Render one environment-file value as a string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        provider = value.get("provider")
        if provider:
            return f"{{{{secret:{provider}:{value.get('secretName', '')}}}}}"
        return environment_value(value.get("value"))
    return json.dumps(value)
