"""
Request handlers for the batch and selection endpoints.

Transport-agnostic: each handler takes a request dict and returns a
(status_code, body) tuple that a web framework or CLI can send on.

Batch run:
    request  {"offset": 0, "auth_token": "..."}
    success  200 {"processed", "skipped", "count", "offset", "next_offset", "more", "errors"}
    failure  403 {"error": "permission" | "invalid_token"}
             400 {"error": "invalid_request", "message": ...}
             500 {"error": "catalog" | "config", "message": ...}

Selection:
    request  {"asset_ids": [...], "auth_token": "..."}
    success  200 {"processed", "skipped"}
    failure  403 {"error": "perm"}, 400/500 as above
"""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import yaml

from config_handler import Config, ConfigStore
from media_catalog import CatalogError
from processor import BatchCursor, BatchProcessor, BulkSelectionProcessor, ValidationError

logger = logging.getLogger(__name__)

CAP_MANAGE = 'manage_settings'
CAP_UPLOAD = 'upload_files'

Response = Tuple[int, Dict[str, Any]]


class InvalidTokenError(Exception):
    """Raised when a request carries an unknown or missing token."""
    pass


class PermissionDeniedError(Exception):
    """Raised when a known caller lacks the needed capability."""
    pass


class TokenAuthorizer:
    """Maps opaque tokens to the capabilities their holder has."""

    def __init__(self, grants: Optional[Mapping[str, Iterable[str]]] = None):
        """
        Initialize the authorizer.

        Args:
            grants: token -> capabilities, e.g. {"abc": ["manage_settings", "upload_files"]}
        """
        self.grants = {token: set(caps) for token, caps in (grants or {}).items()}

    def check(self, token: Optional[str], capability: str):
        """
        Verify a token holds a capability.

        Raises:
            InvalidTokenError: If the token is unknown
            PermissionDeniedError: If the token lacks the capability
        """
        if not token or token not in self.grants:
            raise InvalidTokenError("Unknown token")
        if capability not in self.grants[token]:
            raise PermissionDeniedError(f"Missing capability: {capability}")


class AltTextEndpoints:
    """Handles batch-run and selection requests."""

    def __init__(
        self,
        authorizer: TokenAuthorizer,
        config_store: ConfigStore,
        batch_processor: BatchProcessor,
        selection_processor: BulkSelectionProcessor
    ):
        self.authorizer = authorizer
        self.config_store = config_store
        self.batch_processor = batch_processor
        self.selection_processor = selection_processor

    def _load_config(self) -> Tuple[Optional[Config], Optional[Response]]:
        try:
            return self.config_store.load(), None
        except (yaml.YAMLError, ValueError) as e:
            logger.error("Could not load settings from %s: %s", self.config_store.config_path, e)
            return None, (500, {'error': 'config', 'message': str(e)})

    def bulk_run(self, request: Mapping[str, Any]) -> Response:
        """Process one window of the catalog."""
        try:
            self.authorizer.check(request.get('auth_token'), CAP_MANAGE)
        except PermissionDeniedError:
            return 403, {'error': 'permission'}
        except InvalidTokenError:
            return 403, {'error': 'invalid_token'}

        try:
            cursor = BatchCursor.parse(request.get('offset'))
        except ValidationError as e:
            return 400, {'error': 'invalid_request', 'message': str(e)}

        config, error = self._load_config()
        if error:
            return error

        try:
            result = self.batch_processor.run_batch(cursor, config)
        except CatalogError as e:
            logger.error("Batch at offset %d failed: %s", cursor.offset, e)
            return 500, {'error': 'catalog', 'message': str(e)}

        return 200, result.to_response()

    def bulk_select(self, request: Mapping[str, Any]) -> Response:
        """Process an explicit selection of asset ids."""
        try:
            self.authorizer.check(request.get('auth_token'), CAP_UPLOAD)
        except (PermissionDeniedError, InvalidTokenError):
            return 403, {'error': 'perm'}

        config, error = self._load_config()
        if error:
            return error

        try:
            result = self.selection_processor.run_selection(request.get('asset_ids'), config)
        except ValidationError as e:
            return 400, {'error': 'invalid_request', 'message': str(e)}
        except CatalogError as e:
            logger.error("Selection failed: %s", e)
            return 500, {'error': 'catalog', 'message': str(e)}

        return 200, result.to_response()
