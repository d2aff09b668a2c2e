"""
Dataclasses pour la configuration.
"""
import os
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from ..core.constants import (
    CLIENT_NAME,
    CLIENT_VERSION,
    DEFAULT_CALL_TIMEOUT_S,
    DEFAULT_HOST,
    DEFAULT_INIT_TIMEOUT_S,
    DEFAULT_MAX_FRAME_BYTES,
    DEFAULT_PORT,
    DEFAULT_PROVIDER,
    FAN_OUT_SELECTOR,
    MAX_MAX_FRAME_BYTES,
    MCP_PROTOCOL_VERSION,
    MIN_MAX_FRAME_BYTES,
    NAMESPACE_SEPARATOR,
)
from ..core.exceptions import ConfigurationError
from ..core.models import ProviderDescriptor, SpawnSpec


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} doit être un entier: {raw!r}", config_key=name)


@dataclass
class ServerConfig:
    """Configuration du front HTTP."""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    default_provider: Optional[str] = None
    log_level: str = "INFO"
    public_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        """Crée une instance depuis un dictionnaire (+ surcharges d'environnement)."""
        return cls(
            host=os.getenv("HOST", data.get("host", DEFAULT_HOST)),
            port=_env_int("PORT", int(data.get("port", DEFAULT_PORT))),
            default_provider=os.getenv("MCP_BRIDGE_DEFAULT_PROVIDER", data.get("default_provider")),
            log_level=os.getenv("MCP_BRIDGE_LOG_LEVEL", data.get("log_level", "INFO")).upper(),
            public_url=data.get("public_url"),
        )

    @property
    def url(self) -> str:
        if self.public_url:
            return self.public_url
        return f"http://localhost:{self.port}"


@dataclass
class SessionConfig:
    """Paramètres communs à toutes les sessions RPC."""
    init_timeout_s: float = DEFAULT_INIT_TIMEOUT_S
    call_timeout_s: float = DEFAULT_CALL_TIMEOUT_S
    protocol_version: str = MCP_PROTOCOL_VERSION
    client_name: str = CLIENT_NAME
    client_version: str = CLIENT_VERSION
    send_initialized_notification: bool = True
    max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionConfig":
        """Crée une instance depuis un dictionnaire."""
        max_frame_bytes = int(data.get("max_frame_bytes", DEFAULT_MAX_FRAME_BYTES))
        if max_frame_bytes <= 0:
            max_frame_bytes = DEFAULT_MAX_FRAME_BYTES
        return cls(
            init_timeout_s=float(data.get("init_timeout_s", DEFAULT_INIT_TIMEOUT_S)),
            call_timeout_s=float(data.get("call_timeout_s", DEFAULT_CALL_TIMEOUT_S)),
            protocol_version=data.get("protocol_version", MCP_PROTOCOL_VERSION),
            client_name=data.get("client_name", CLIENT_NAME),
            client_version=data.get("client_version", CLIENT_VERSION),
            send_initialized_notification=bool(data.get("send_initialized_notification", True)),
            max_frame_bytes=min(MAX_MAX_FRAME_BYTES, max(MIN_MAX_FRAME_BYTES, max_frame_bytes)),
        )


@dataclass
class ProviderConfig:
    """Déclaration d'un provider (processus MCP stdio)."""
    name: str
    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    init_timeout_s: Optional[float] = None
    call_timeout_s: Optional[float] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ProviderConfig":
        """Crée une instance depuis un dictionnaire."""
        if name == FAN_OUT_SELECTOR or NAMESPACE_SEPARATOR in name or not name:
            raise ConfigurationError(f"Nom de provider invalide: {name!r}", config_key=f"providers.{name}")
        command = data.get("command")
        if not isinstance(command, str) or not command:
            raise ConfigurationError(
                f"Provider {name}: 'command' manquant",
                config_key=f"providers.{name}.command"
            )
        args = data.get("args", [])
        env = data.get("env", {})
        if not isinstance(args, list) or not isinstance(env, dict):
            raise ConfigurationError(
                f"Provider {name}: 'args' doit être une liste et 'env' une table",
                config_key=f"providers.{name}"
            )
        init_timeout = data.get("init_timeout_s")
        call_timeout = data.get("call_timeout_s")
        return cls(
            name=name,
            command=command,
            args=[str(a) for a in args],
            env={str(k): str(v) for k, v in env.items()},
            cwd=data.get("cwd"),
            init_timeout_s=float(init_timeout) if init_timeout is not None else None,
            call_timeout_s=float(call_timeout) if call_timeout is not None else None,
        )

    def to_descriptor(self, session: SessionConfig) -> ProviderDescriptor:
        return ProviderDescriptor(
            name=self.name,
            spawn_spec=SpawnSpec(command=self.command, args=list(self.args), env=dict(self.env), cwd=self.cwd),
            init_timeout_s=self.init_timeout_s if self.init_timeout_s is not None else session.init_timeout_s,
            call_timeout_s=self.call_timeout_s if self.call_timeout_s is not None else session.call_timeout_s,
        )


@dataclass
class Settings:
    """Configuration globale du bridge."""
    server: ServerConfig = field(default_factory=ServerConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    providers: List[ProviderConfig] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Settings":
        """Crée une instance depuis la configuration chargée."""
        providers_config = config.get("providers", {})
        if not isinstance(providers_config, dict) or not providers_config:
            raise ConfigurationError("Aucun provider configuré", config_key="providers")

        providers = [
            ProviderConfig.from_dict(name, data or {})
            for name, data in providers_config.items()
        ]
        settings = cls(
            server=ServerConfig.from_dict(config.get("server", {})),
            session=SessionConfig.from_dict(config.get("session", {})),
            providers=providers,
        )
        settings.validate()
        return settings

    @property
    def provider_names(self) -> List[str]:
        return [p.name for p in self.providers]

    @property
    def default_provider(self) -> str:
        """Provider par défaut: configuré, sinon 'xero' s'il existe, sinon le premier."""
        if self.server.default_provider:
            return self.server.default_provider
        names = self.provider_names
        if DEFAULT_PROVIDER in names:
            return DEFAULT_PROVIDER
        return names[0]

    def validate(self) -> None:
        if not self.providers:
            raise ConfigurationError("Aucun provider configuré", config_key="providers")
        if self.default_provider not in self.provider_names:
            raise ConfigurationError(
                f"Provider par défaut inconnu: {self.default_provider}",
                config_key="server.default_provider"
            )

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        """Récupère un provider par son nom."""
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None

    def descriptors(self) -> List[ProviderDescriptor]:
        """Descripteurs dans l'ordre de déclaration du fichier."""
        return [p.to_descriptor(self.session) for p in self.providers]
