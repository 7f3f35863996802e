"""App configuration: environment settings and persisted config.json.

Environment (read from .env via python-dotenv):
  DATA_DIR    storage base directory (default: ./data)
  HOST, PORT  bind address for the dev server
  LOG_LEVEL   root logging level (default: INFO)

config.json holds LLM connections and agent routing:
  llm_connections     list of {name, provider_url, api_key, provider_format, model};
                      replaced wholesale on update
  agent_connections   {agent_key: connection_name}; merged key by key
  default_connection  connection used when an agent has no assignment
  llm_timeout         seconds per LLM request

get_config() returns defaults merged with stored values.
"""

import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ROOT = Path(__file__).parent.parent

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm_connections": [],
    "agent_connections": {},
    "default_connection": "",
    "llm_timeout": 120.0,
}


def load_env() -> None:
    load_dotenv(ROOT / ".env")


def data_dir_from_env() -> Path:
    return Path(os.getenv("DATA_DIR", str(ROOT / "data")))


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config: dict[str, Any] = {
        "llm_connections": list(_CONFIG_DEFAULTS["llm_connections"]),
        "agent_connections": dict(_CONFIG_DEFAULTS["agent_connections"]),
        "default_connection": _CONFIG_DEFAULTS["default_connection"],
        "llm_timeout": _CONFIG_DEFAULTS["llm_timeout"],
    }
    path = _config_path(data_dir)
    if path.is_file():
        stored = json.loads(path.read_text())
        if "llm_connections" in stored:
            config["llm_connections"] = stored["llm_connections"]
        if "agent_connections" in stored:
            config["agent_connections"].update(stored["agent_connections"])
        if "default_connection" in stored:
            config["default_connection"] = stored["default_connection"]
        if "llm_timeout" in stored:
            config["llm_timeout"] = stored["llm_timeout"]
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = get_config(data_dir)
    if "llm_connections" in fields:
        config["llm_connections"] = fields["llm_connections"]
    if "agent_connections" in fields:
        config["agent_connections"].update(fields["agent_connections"])
    if "default_connection" in fields:
        config["default_connection"] = fields["default_connection"]
    if "llm_timeout" in fields:
        config["llm_timeout"] = fields["llm_timeout"]
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return config


def resolve_connection(
    config: dict[str, Any], agent_key: str, explicit: str = ""
) -> dict[str, Any] | None:
    """Find the LLM connection for an agent.

    The agent's own connection name wins, then the agent_connections
    mapping, then default_connection.
    """
    conn_name = (
        explicit
        or config.get("agent_connections", {}).get(agent_key, "")
        or config.get("default_connection", "")
    )
    if not conn_name:
        return None
    for conn in config["llm_connections"]:
        if conn["name"] == conn_name:
            return conn
    return None
