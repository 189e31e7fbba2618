"""Custom exceptions for the arbitrage engine."""

from typing import List, Optional


class ArbitrageBotError(Exception):
    """Base exception for all bot errors."""

    pass


class ConfigurationError(ArbitrageBotError):
    """Required bot settings are missing."""

    pass


class NotFoundError(ArbitrageBotError):
    """Referenced entity is missing or no longer active."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.entity_id = entity_id


class BotInactiveError(ArbitrageBotError):
    """Action requires an active bot."""

    pass


class ValidationError(ArbitrageBotError):
    """Malformed settings update."""

    def __init__(self, message: str, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class DanglingReferenceError(ArbitrageBotError):
    """A joined read found a foreign key with no matching row."""

    def __init__(self, entity: str, entity_id: str, referenced_by: str):
        super().__init__(f"{entity} {entity_id} referenced by {referenced_by} does not exist")
        self.entity = entity
        self.entity_id = entity_id
        self.referenced_by = referenced_by
