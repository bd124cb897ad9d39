# Token cleanup.
# Created: 2026-10-12

from __future__ import annotations

import logging
from datetime import datetime

from projectflow.api.oauth2.models import utcnow
from projectflow.api.oauth2.storage import TokenStore

logger = logging.getLogger(__name__)


class TokenJanitor:
    """Deletes revoked and expired tokens. Driven by an external scheduler."""

    def __init__(self, storage: TokenStore):
        self.storage = storage

    def cleanup(self, now: datetime | None = None) -> int:
        """Delete eligible token rows and stale codes; return tokens deleted.

        Only rows already revoked or past ``expires_at`` are eligible, so a
        run can never remove a token an in-flight exchange is about to use.
        """
        now = now or utcnow()
        deleted = self.storage.delete_tokens(lambda t: t.revoked or t.expires_at < now)
        codes = self.storage.purge_codes(now)
        logger.info("Token cleanup removed %d tokens and %d codes", deleted, codes)
        return deleted
