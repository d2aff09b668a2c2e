"""mcp_http_bridge.config.loader

Chargement de la configuration TOML.

Note d'architecture:
- Le package `config/` ne dépend que de `core/`: il ne doit pas importer la
  couche Proxy afin d'éviter les imports circulaires.
"""
import os
import re
import tomllib
from pathlib import Path
from typing import Dict, Any, List, Optional

from dotenv import load_dotenv

from ..core.constants import DEFAULT_PROVIDERS_CONFIG
from ..core.exceptions import ConfigurationError

# Variable d'environnement désignant le fichier de configuration
CONFIG_PATH_ENV = "MCP_BRIDGE_CONFIG"

# Cache global de configuration
_config_cache: Optional[Dict[str, Any]] = None

_ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')


def _expand_env_vars(obj: Any) -> Any:
    """
    Récursivement étend les variables d'environnement ${VAR} dans la config.

    Args:
        obj: Valeur à traiter (str, dict, list)

    Returns:
        Valeur avec variables d'environnement expansées (variable absente -> "")
    """
    if isinstance(obj, str):
        return _ENV_VAR_PATTERN.sub(lambda match: os.environ.get(match.group(1), ""), obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def _clear_config_cache():
    """Vide le cache de configuration."""
    global _config_cache
    _config_cache = None


def default_config() -> Dict[str, Any]:
    """Configuration utilisée quand aucun config.toml n'est trouvé."""
    return {"providers": _expand_env_vars(DEFAULT_PROVIDERS_CONFIG)}


def load_env_files(config_path: Optional[Path] = None) -> List[Path]:
    """
    Charge les fichiers `.env` (répertoire courant, puis celui du config.toml).

    Les variables déjà présentes dans l'environnement ne sont jamais écrasées.
    Les enfants MCP héritent de `os.environ`: les identifiants (ex.
    XERO_CLIENT_ID) déclarés dans `.env` leur parviennent sans config.toml.

    Returns:
        Fichiers effectivement chargés
    """
    candidates = [Path.cwd() / ".env"]
    if config_path is not None:
        candidates.append(config_path.resolve().parent / ".env")

    loaded: List[Path] = []
    for candidate in candidates:
        candidate = candidate.resolve()
        if candidate in loaded or not candidate.is_file():
            continue
        load_dotenv(candidate, override=False)
        loaded.append(candidate)
    return loaded


def _resolve_config_path(config_path: Optional[str]) -> Optional[Path]:
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    candidate = Path.cwd() / "config.toml"
    return candidate if candidate.exists() else None


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Charge la configuration depuis config.toml.

    Ordre de recherche: argument explicite, $MCP_BRIDGE_CONFIG, ./config.toml.
    Sans fichier, la configuration par défaut (provider xero) est utilisée.
    Les fichiers `.env` sont chargés avant l'expansion des `${VAR}`.

    Args:
        config_path: Chemin vers le fichier config (optionnel)

    Returns:
        Dictionnaire de configuration

    Raises:
        ConfigurationError: Si le fichier désigné n'existe pas ou est invalide
    """
    global _config_cache

    if _config_cache is not None and config_path is None:
        return _config_cache

    path = _resolve_config_path(config_path)
    load_env_files(path)
    if path is None:
        _config_cache = default_config()
        return _config_cache

    if not path.exists():
        raise ConfigurationError(
            message=f"Fichier de configuration non trouvé: {path}",
            config_key="config_path"
        )

    try:
        with open(path, "rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            message=f"Fichier de configuration invalide ({path}): {e}",
            config_key="config_path"
        ) from e

    _config_cache = _expand_env_vars(raw_config)
    return _config_cache


def reload_config(config_path: str = None) -> Dict[str, Any]:
    """
    Recharge la configuration depuis le fichier.

    Returns:
        Nouvelle configuration chargée
    """
    _clear_config_cache()
    return load_config(config_path)


def get_config() -> Dict[str, Any]:
    """
    Retourne la configuration en cache.

    Returns:
        Configuration actuelle
    """
    if _config_cache is None:
        return load_config()
    return _config_cache
