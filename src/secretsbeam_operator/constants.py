"""Constants for the Secretsbeam Operator."""

# API Group
API_GROUP = "secretsbeam.io"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_SECRET = "ExternalSecret"
KIND_SECRET_ACCESS = "ExternalSecretAccess"
KIND_SECRET_PROVIDER = "ExternalSecretProvider"

# Plurals
PLURAL_SECRETS = "externalsecrets"
PLURAL_SECRET_ACCESSES = "externalsecretaccesses"
PLURAL_SECRET_PROVIDERS = "externalsecretproviders"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Backend tags
TAG_OWNER = f"{API_GROUP}/owner"
TAG_MANAGED_BY = f"{API_GROUP}/managed-by"

# Value stored for secrets whose content is managed outside the operator
EXTERNAL_PLACEHOLDER = "PLACEHOLDER"

# Recovery windows accepted by the backend; 0 purges immediately
MIN_RECOVERY_WINDOW_DAYS = 7
MAX_RECOVERY_WINDOW_DAYS = 30

# Provider types
PROVIDER_AWS = "aws"

# Condition Types
COND_AVAILABLE = "Available"
COND_UNAVAILABLE = "Unavailable"
COND_CREATION_FAILED = "CreationFailed"
COND_READY = "Ready"

# Condition Reasons
REASON_CREATED = "Created"
REASON_UPDATED = "Updated"
REASON_PROVIDER_ERROR = "ProviderError"
REASON_CONTROLLER_ERROR = "ControllerError"
REASON_CREATION_FAILED = "CreationFailed"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_SECRET_CREATED = "SecretCreated"
EVENT_REASON_SECRET_UPDATED = "SecretUpdated"
EVENT_REASON_SECRET_ROTATED = "SecretRotated"
EVENT_REASON_SECRET_DELETED = "SecretDeleted"
EVENT_REASON_ACCESS_GRANTED = "AccessGranted"
EVENT_REASON_ACCESS_UPDATED = "AccessUpdated"
EVENT_REASON_ACCESS_REVOKED = "AccessRevoked"
EVENT_REASON_PROVIDER_REGISTERED = "ProviderRegistered"

# Retry backoff (seconds)
SECRET_RETRY_BASE_DELAY = 10.0
ACCESS_RETRY_BASE_DELAY = 60.0
RETRY_MAX_DELAY = 600.0
