# Infrastructure clients
from clients.valkey_client import ValkeyClient
from clients.auth_api_client import (
    AuthApiClient,
    AuthApiError,
    AuthApiUnreachable,
    AuthApiUnauthorized,
    AuthApiRejected,
)
