"""nbs-sftp: SFTP client operations with fingerprint pinning and structured events."""

__version__ = "0.1.0"

from nbs_sftp.auth import (
    AuthMethodChain,
    AuthStep,
    AuthStepKind,
    build_auth_chain,
    create_key_file_descriptor,
    create_key_string_descriptor,
    create_keyboard_interactive_descriptor,
    create_password_descriptor,
    load_private_key,
    load_private_key_file,
)
from nbs_sftp.cancellation import CancellationToken
from nbs_sftp.config import (
    AuthenticationType,
    ConnectionDescriptor,
    HostKeyAlgorithm,
    PromptResponse,
    load_descriptor,
)
from nbs_sftp.conflict import FileConflictPolicy
from nbs_sftp.connection import SFTPConnection
from nbs_sftp.encoding import FileEncoding, ResolvedEncoding, resolve_encoding
from nbs_sftp.errors import (
    AuthenticationError,
    AuthFailed,
    BatchConflict,
    BatchOperationError,
    ConfigurationError,
    ConflictError,
    ConnectionRefused,
    ConnectionTimeout,
    DisconnectReason,
    ErrorContext,
    HostKeyMismatch,
    HostUnreachable,
    InteractiveAuthError,
    KeyLoadError,
    MissingKeyMaterial,
    NoMutualKex,
    OperationCancelled,
    PathNotFound,
    RemoteOperationError,
    RenameLimitExceeded,
    SFTPConnectionError,
    SFTPError,
    TargetExists,
    TrustError,
    UnsupportedAuthentication,
    UnsupportedFingerprintFormat,
)
from nbs_sftp.events import Event, EventCollector, EventEmitter, EventType, OperationStatus
from nbs_sftp.fingerprint import ExpectedFingerprint, FingerprintFormat, classify
from nbs_sftp.operations import (
    DeleteDirectoryResult,
    DeleteFilesResult,
    ListResult,
    MoveResult,
    NotExistsAction,
    ReadResult,
    RenameResult,
    TransferOutcome,
    WriteBehaviour,
    WriteResult,
    create_directories,
    delete_directory,
    delete_files,
    download_file,
    list_files,
    move_files,
    read_file,
    rename_file,
    upload_file,
    write_file,
)
from nbs_sftp.prompts import InteractivePromptResolver
from nbs_sftp.trust import HostKeyEvent, TrustDecision, TrustVerifier, verify
from nbs_sftp.walker import DirectoryEntry, IncludeType, walk

__all__ = [
    # Connection
    "SFTPConnection",
    "ConnectionDescriptor",
    "AuthenticationType",
    "HostKeyAlgorithm",
    "PromptResponse",
    "load_descriptor",
    # Auth
    "AuthMethodChain",
    "AuthStep",
    "AuthStepKind",
    "build_auth_chain",
    "create_password_descriptor",
    "create_key_file_descriptor",
    "create_key_string_descriptor",
    "create_keyboard_interactive_descriptor",
    "load_private_key",
    "load_private_key_file",
    "InteractivePromptResolver",
    # Trust
    "ExpectedFingerprint",
    "FingerprintFormat",
    "classify",
    "HostKeyEvent",
    "TrustDecision",
    "TrustVerifier",
    "verify",
    # Files
    "DirectoryEntry",
    "IncludeType",
    "walk",
    "FileConflictPolicy",
    "FileEncoding",
    "ResolvedEncoding",
    "resolve_encoding",
    "CancellationToken",
    # Operations
    "list_files",
    "move_files",
    "rename_file",
    "delete_files",
    "delete_directory",
    "read_file",
    "write_file",
    "upload_file",
    "download_file",
    "create_directories",
    "ListResult",
    "MoveResult",
    "RenameResult",
    "DeleteFilesResult",
    "DeleteDirectoryResult",
    "ReadResult",
    "WriteResult",
    "TransferOutcome",
    "WriteBehaviour",
    "NotExistsAction",
    # Events
    "Event",
    "EventCollector",
    "EventEmitter",
    "EventType",
    "OperationStatus",
    # Errors
    "SFTPError",
    "ErrorContext",
    "DisconnectReason",
    "ConfigurationError",
    "MissingKeyMaterial",
    "UnsupportedAuthentication",
    "KeyLoadError",
    "TrustError",
    "HostKeyMismatch",
    "UnsupportedFingerprintFormat",
    "AuthenticationError",
    "AuthFailed",
    "InteractiveAuthError",
    "PathNotFound",
    "ConflictError",
    "TargetExists",
    "BatchConflict",
    "RenameLimitExceeded",
    "BatchOperationError",
    "OperationCancelled",
    "RemoteOperationError",
    "SFTPConnectionError",
    "ConnectionRefused",
    "ConnectionTimeout",
    "HostUnreachable",
    "NoMutualKex",
]
