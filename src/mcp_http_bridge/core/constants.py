"""
Constantes globales pour le MCP HTTP Bridge.
"""

# ============================================================================
# SERVEUR HTTP
# ============================================================================
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_PROVIDER = "xero"

# Sélecteur de fan-out (GET /tools?provider=all)
FAN_OUT_SELECTOR = "all"
# Séparateur de namespace: "supabase.list-tables"
NAMESPACE_SEPARATOR = "."

# ============================================================================
# SESSION RPC
# ============================================================================
DEFAULT_INIT_TIMEOUT_S = 10.0
DEFAULT_CALL_TIMEOUT_S = 10.0
MCP_PROTOCOL_VERSION = "2024-11-05"
CLIENT_NAME = "http-wrapper"
CLIENT_VERSION = "1.0.0"

# ============================================================================
# FLUX STDOUT
# ============================================================================
STDOUT_READ_CHUNK_BYTES = 64 * 1024
DEFAULT_MAX_FRAME_BYTES = 8 * 1024 * 1024  # 8 MiB
MIN_MAX_FRAME_BYTES = 64 * 1024
MAX_MAX_FRAME_BYTES = 64 * 1024 * 1024  # 64 MiB

# Délai accordé à un enfant après SIGTERM avant SIGKILL (aclose)
PROCESS_TERMINATE_GRACE_S = 2.0

# ============================================================================
# CODES JSON-RPC
# ============================================================================
JSONRPC_PARSE_ERROR = -32700
JSONRPC_INVALID_REQUEST = -32600
JSONRPC_INTERNAL_ERROR = -32603

# Provider par défaut quand aucun config.toml n'est trouvé
DEFAULT_PROVIDERS_CONFIG = {
    "xero": {
        "command": "node",
        # XERO_CLIENT_ID / XERO_CLIENT_SECRET sont hérités de l'environnement parent
        "args": ["dist/index.js"],
        "env": {},
    },
}
