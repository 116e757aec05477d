"""Error types raised by the ingestion pipeline and the entity store"""


class RadioFeedError(Exception):
    """Base class for all radiofeed errors"""


class FetchError(RadioFeedError):
    """Feed or asset host unreachable, or answered with a non-2xx status"""

    def __init__(self, url: str, message: str, status_code: int = None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"{message} ({url})")


class SchemaError(RadioFeedError):
    """Payload shape is wrong: feed body not an array, or a record missing a mandatory field"""


class StoreError(RadioFeedError):
    """Storage layer failure (constraint violation, database unavailable)"""


class IngestionInProgressError(RadioFeedError):
    """Another ingestion run is already active in this process"""
