import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from .errors import ConfigurationError

DEFAULT_BIND = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_SITE_CONFIG_PATH = "formbridge.yml"
TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    github_token: Optional[str] = None
    github_api_url: str = DEFAULT_API_URL
    site_config_path: str = DEFAULT_SITE_CONFIG_PATH
    bind: str = DEFAULT_BIND
    port: int = DEFAULT_PORT
    debug: bool = False

    def require_github_token(self) -> str:
        if not self.github_token:
            raise ConfigurationError("GitHub token is not configured (set GITHUB_TOKEN or [github] token)")
        return self.github_token


def _read_config_file(config_path: Path) -> Dict[str, object]:
    if not config_path.exists():
        return {"github": {}, "server": {}}

    with config_path.open("rb") as config_file:
        try:
            data = tomllib.load(config_file)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Failed to parse configuration file {config_path}: {exc}") from exc

    github = data.get("github") or {}
    server = data.get("server") or {}
    if not isinstance(github, dict):
        raise ConfigurationError("Configuration file 'github' must be a table if provided")
    if not isinstance(server, dict):
        raise ConfigurationError("Configuration file 'server' must be a table if provided")
    return {"github": github, "server": server}


def parse_port(value: object) -> int:
    if isinstance(value, bool):
        raise ConfigurationError("Server port must be an integer between 1 and 65535")
    if isinstance(value, int):
        port = value
    elif isinstance(value, str) and value.strip():
        try:
            port = int(value.strip())
        except ValueError as exc:
            raise ConfigurationError(f"Server port must be an integer, got {value!r}") from exc
    else:
        raise ConfigurationError("Server port must be an integer between 1 and 65535")

    if not 1 <= port <= 65535:
        raise ConfigurationError("Server port must be between 1 and 65535")
    return port


def _parse_flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    bind_override: Optional[str] = None,
    port_override: Optional[int] = None,
    debug_override: Optional[bool] = None,
) -> Settings:
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = Path(env.get("FORMBRIDGE_CONFIG", "config.toml"))
    data = _read_config_file(config_path)
    github = data["github"]
    server = data["server"]

    token = env.get("GITHUB_TOKEN", "").strip() or github.get("token") or None
    api_url = env.get("GITHUB_API_URL", "").strip() or github.get("api_url", DEFAULT_API_URL)
    site_config_path = (
        env.get("FORMBRIDGE_CONFIG_PATH", "").strip() or github.get("config_path", DEFAULT_SITE_CONFIG_PATH)
    )

    env_bind = env.get("FORMBRIDGE_BIND", "").strip()
    env_port = env.get("FORMBRIDGE_PORT", "").strip()
    env_debug = env.get("FORMBRIDGE_DEBUG", "").strip()
    bind = bind_override or env_bind or server.get("bind", DEFAULT_BIND)
    port_source = port_override if port_override is not None else env_port or server.get("port", DEFAULT_PORT)
    if debug_override is not None:
        debug = debug_override
    else:
        debug = _parse_flag(env_debug or server.get("debug", False))

    return Settings(
        github_token=token,
        github_api_url=str(api_url).rstrip("/"),
        site_config_path=str(site_config_path).lstrip("/"),
        bind=bind,
        port=parse_port(port_source),
        debug=debug,
    )
