from pathlib import Path

from config.loader import get_config_loader

# Get the config loader instance
config = get_config_loader()

VERSION = "0.1.0"
USER_AGENT = f"bb/{VERSION}"

# Logging
LOG_LEVEL = config.get("LOG_LEVEL", "warning")

# HTTP timeouts (seconds)
# Connection timeout: time to establish the TCP connection
CONNECT_TIMEOUT = config.get("CONNECT_TIMEOUT", 10.0)
# Request timeout: total budget for one API call
REQUEST_TIMEOUT = config.get("REQUEST_TIMEOUT", 30.0)

# Bitbucket Cloud API (hardcoded - not user configurable)
CLOUD_API_BASE = "https://api.bitbucket.org/2.0"
SERVER_API_PATH = "/rest/api/1.0"

# OAuth configuration
# Endpoints are Cloud-only; OAuth is not offered against Server/DC hosts
AUTHORIZE_URL = "https://bitbucket.org/site/oauth2/authorize"
TOKEN_URL = "https://bitbucket.org/site/oauth2/access_token"
DEFAULT_CLIENT_ID = "Pyydmsf5kLpEqs24kw"
DEFAULT_REDIRECT_URI = "http://localhost:8085/callback"
DEFAULT_CALLBACK_PORT = 8085
DEFAULT_SCOPES = [
    "repository",
    "repository:write",
    "pullrequest",
    "pullrequest:write",
    "account",
    "pipeline",
    "pipeline:write",
    "webhook",
]

OAUTH_CLIENT_ID = config.get("OAUTH_CLIENT_ID", DEFAULT_CLIENT_ID)
# No secret means public-client PKCE mode (client_id sent in the form body)
OAUTH_CLIENT_SECRET = config.get_optional("OAUTH_CLIENT_SECRET")
OAUTH_REDIRECT_URI = config.get("OAUTH_REDIRECT_URI", DEFAULT_REDIRECT_URI)
OAUTH_SCOPES = config.get_list("OAUTH_SCOPES", DEFAULT_SCOPES)
# How long the login flow waits for the browser redirect
OAUTH_CALLBACK_TIMEOUT = config.get("OAUTH_CALLBACK_TIMEOUT", 300.0)

# Credential storage
KEYRING_SERVICE = config.get("KEYRING_SERVICE", "bitbucket-cli")

# Profile registry
PROFILES_FILE = config.get("PROFILES_FILE", str(Path.home() / ".config" / "bb" / "profiles.json"))
