"""Authentication, session and phone verification modules."""

from auth.exceptions import (
    AuthError,
    InvalidInputError,
    DuplicateAccountError,
    InvalidCredentialsError,
    RemoteAuthorityError,
    NetworkError,
    ServerError,
    SessionExpiredError,
    TooManyAttemptsError,
    InvalidCodeError,
    AccountNotFoundError,
    NotAuthenticatedError,
)
from auth.types import (
    Account,
    AccountInput,
    UserStats,
    VerificationRecord,
    AuthStatus,
    SessionState,
)
from auth.config import AuthConfig, load_config
from auth.results import AuthResult, AuthErrorInfo, ErrorCodes
from auth.credential_store import CredentialStore, is_local_token
from auth.verification import VerificationService, SendCodeResult
from auth.session import SessionStore
from auth.state import SessionPublisher
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.service import SessionEngine, create_session_engine
