from __future__ import annotations

from typing import Any, Dict, Optional


class GridConnectorError(Exception):
    """Base exception for grid_connector.

    Every error surfaced to callers carries a human readable ``message``;
    backend specific detail is optional and never required to branch on.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ConfigurationError(GridConnectorError):
    pass


class TransportError(GridConnectorError):
    """Network, DNS or timeout failure reaching a backend."""


class BackendQueryError(GridConnectorError):
    """The backend answered but rejected the query."""


class ShapeViolation(GridConnectorError):
    """A payload broke an invariant the normalizer relies on."""


class ResourceExhaustion(GridConnectorError):
    pass
