"""
Exceptions personnalisées pour le MCP HTTP Bridge.

Chaque exception porte le status HTTP et le code JSON-RPC utilisés par la
couche API pour construire l'enveloppe d'erreur.
"""


class BridgeError(Exception):
    """Exception de base pour toutes les erreurs du bridge."""

    http_status: int = 500
    jsonrpc_code: int = -32603

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or "unknown_error"
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"[{self.code}] {self.message} - Détails: {self.details}"
        return f"[{self.code}] {self.message}"


class ConfigurationError(BridgeError):
    """Erreur de configuration (fichier invalide, provider mal défini)."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(
            message=message,
            code="config_error",
            details={"key": config_key} if config_key else {}
        )


# ============================================================================
# ROUTAGE (rejetées avant toute interaction avec un processus)
# ============================================================================

class UnknownProviderError(BridgeError):
    """Le routage référence un provider absent du registre."""

    http_status = 400
    jsonrpc_code = -32001

    def __init__(self, provider: str, known: list = None):
        super().__init__(
            message=f"Unknown provider: {provider}",
            code="unknown_provider",
            details={"provider": provider, "known": list(known or [])}
        )
        self.provider = provider


class InvalidProviderSelectorError(BridgeError):
    """Sélecteur `provider=all` utilisé sur une opération à cible unique."""

    http_status = 400
    jsonrpc_code = -32602

    def __init__(self, method: str, selector: str = "all"):
        super().__init__(
            message=f"provider={selector} is not supported for {method}",
            code="invalid_provider_selector",
            details={"method": method, "selector": selector}
        )


class InvalidRequestError(BridgeError):
    """Requête HTTP entrante non exploitable (JSON invalide, pas un objet)."""

    http_status = 400
    jsonrpc_code = -32600

    def __init__(self, message: str, jsonrpc_code: int = -32600):
        super().__init__(message=message, code="invalid_request")
        self.jsonrpc_code = jsonrpc_code


# ============================================================================
# PROCESSUS ENFANT / SESSION RPC
# ============================================================================

class ConnectivityError(BridgeError):
    """Le processus enfant n'est pas joignable (démarrage raté, mort)."""

    http_status = 502
    jsonrpc_code = -32002


class SpawnError(ConnectivityError):
    """Le processus enfant n'a pas pu être lancé (binaire absent, permissions)."""

    def __init__(self, provider: str, command: str, reason: str):
        super().__init__(
            message=f"{provider}: failed to start '{command}': {reason}",
            code="spawn_error",
            details={"provider": provider, "command": command}
        )
        self.provider = provider


class ProcessExitedError(ConnectivityError):
    """Le processus enfant s'est terminé ou son stdin est fermé."""

    def __init__(self, provider: str, returncode: int = None, reason: str = None):
        message = f"{provider}: MCP server process exited"
        if returncode is not None:
            message += f" with code {returncode}"
        if reason:
            message += f" ({reason})"
        super().__init__(
            message=message,
            code="process_exited",
            details={"provider": provider, "returncode": returncode}
        )
        self.provider = provider
        self.returncode = returncode


class BridgeTimeoutError(BridgeError):
    """Aucune réponse qualifiante dans la fenêtre de timeout."""

    http_status = 504
    jsonrpc_code = -32003


class InitTimeoutError(BridgeTimeoutError):
    """Timeout pendant la poignée de main `initialize`."""

    def __init__(self, provider: str, timeout_s: float):
        super().__init__(
            message=f"{provider}: timeout during initialization ({timeout_s:g}s)",
            code="init_timeout",
            details={"provider": provider, "timeout_s": timeout_s}
        )


class CallTimeoutError(BridgeTimeoutError):
    """Timeout en attente de la réponse à un appel."""

    def __init__(self, provider: str, method: str, request_id: int | None, timeout_s: float):
        super().__init__(
            message=f"{provider}: timeout waiting for response to {method} (id={request_id}, {timeout_s:g}s)",
            code="call_timeout",
            details={"provider": provider, "method": method, "id": request_id}
        )


class ProtocolError(BridgeError):
    """Réponse `error` là où un `result` était requis."""

    http_status = 502
    jsonrpc_code = -32004

    def __init__(self, provider: str, message: str, error: object = None):
        super().__init__(
            message=f"{provider}: {message}",
            code="protocol_error",
            details={"provider": provider, "error": error} if error is not None else {"provider": provider}
        )
        self.error = error


class SessionNotReadyError(BridgeError):
    """`send()` appelé sur une session qui n'est pas READY."""

    http_status = 503
    jsonrpc_code = -32005

    def __init__(self, provider: str, state: str):
        super().__init__(
            message=f"{provider}: session not ready (state={state})",
            code="session_not_ready",
            details={"provider": provider, "state": state}
        )


class MalformedFrameError(BridgeError):
    """Ligne stdout illisible; journalisée puis ignorée, jamais propagée."""

    def __init__(self, message: str, preview: str = None):
        details = {}
        if preview:
            details["preview"] = preview[:100]
        super().__init__(message=message, code="malformed_frame", details=details)
