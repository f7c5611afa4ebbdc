"""Custom exception hierarchy for the literature harvester."""


class HarvesterError(Exception):
    """Base exception for harvester errors."""


class ConfigurationError(HarvesterError):
    """Raised when configuration is invalid or incomplete."""


class AdapterFetchError(HarvesterError):
    """Raised when a source adapter cannot fetch or parse a page."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class RecordStoreWriteError(HarvesterError):
    """Raised when a single record cannot be written to the record store."""


class CheckpointPersistError(HarvesterError):
    """Raised when harvest progress cannot be written durably."""


class DatabaseError(HarvesterError):
    """Raised when database operations fail."""


class PaperNotFoundError(HarvesterError, LookupError):
    """Raised when a paper id is unknown to the record store."""

    def __init__(self, paper_id: str) -> None:
        super().__init__(f"Paper not found: {paper_id}")
        self.paper_id = paper_id


class SelfCitationError(HarvesterError):
    """Raised when a self-citation is rejected by policy."""
