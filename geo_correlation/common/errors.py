"""Domain errors and failure typing."""


class CorrelationError(Exception):
    """Base class for correlation engine failures."""

    error_code = "CORRELATION_ERROR"


class ConfigError(CorrelationError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class CollaboratorError(CorrelationError):
    """Raised when an external collaborator is unreachable or returns garbage."""

    error_code = "COLLABORATOR_ERROR"


class DatasetStoreError(CollaboratorError):
    error_code = "DATASET_STORE_ERROR"


class BoundarySourceError(CollaboratorError):
    error_code = "BOUNDARY_SOURCE_ERROR"


class RelationshipConfigError(CorrelationError):
    """Raised for relationship descriptors that cannot be resolved."""

    error_code = "RELATIONSHIP_CONFIG_ERROR"
