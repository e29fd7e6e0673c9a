"""Constants for the Metal Device Operator."""

# API Groups
API_GROUP = "server.metal.equinix.com"
API_GROUP_VERSION = f"{API_GROUP}/v1alpha2"
PROVIDER_API_GROUP = "metal.equinix.com"
PROVIDER_API_VERSION = "v1beta1"
PROVIDER_API_GROUP_VERSION = f"{PROVIDER_API_GROUP}/{PROVIDER_API_VERSION}"

# Resource Kinds
KIND_DEVICE = "Device"
KIND_PROVIDER_CONFIG = "ProviderConfig"
KIND_PROVIDER_CONFIG_USAGE = "ProviderConfigUsage"

# Plurals
PLURAL_PROVIDER_CONFIGS = "providerconfigs"
PLURAL_PROVIDER_CONFIG_USAGES = "providerconfigusages"

# Default ProviderConfig name when a Device does not reference one
DEFAULT_PROVIDER_CONFIG = "default"

# Labels
LABEL_MANAGED_BY = f"{PROVIDER_API_GROUP}/managed-by"
LABEL_PROVIDER_CONFIG = f"{PROVIDER_API_GROUP}/provider-config"
LABEL_RESOURCE_UID = f"{PROVIDER_API_GROUP}/resource-uid"

# Annotations
ANNOTATION_EXTERNAL_NAME = "crossplane.io/external-name"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"
PROVIDER_CONFIG_FINALIZER = f"{PROVIDER_API_GROUP}/in-use"

# Field Manager
FIELD_MANAGER = "metal-device-operator"

# Credentials
CREDENTIALS_SOURCE_SECRET = "Secret"
CREDENTIAL_API_KEY = "apiKey"
CREDENTIAL_PROJECT_ID = "projectID"

# Condition Types
COND_READY = "Ready"
COND_AUTH_VALID = "AuthValid"

# Ready condition reasons
REASON_AVAILABLE = "Available"
REASON_CREATING = "Creating"
REASON_DELETING = "Deleting"
REASON_UNAVAILABLE = "Unavailable"

# Device lifecycle states reported by the Metal API
STATE_ACTIVE = "active"
STATE_PROVISIONING = "provisioning"
STATE_QUEUED = "queued"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_SUCCEEDED = "ValidateSucceeded"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_DEVICE_CREATED = "DeviceCreated"
EVENT_REASON_DEVICE_UPDATED = "DeviceUpdated"
EVENT_REASON_DEVICE_DELETED = "DeviceDeleted"
EVENT_REASON_NETWORK_TYPE_CONVERTED = "NetworkTypeConverted"
EVENT_REASON_LATE_INITIALIZED = "LateInitialized"
