from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from finsync.models_sqlalchemy.models import OAuthToken
from finsync.utils.logger import logger


ETSY_PROVIDER = "etsy"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


class SqlTokenStorage:
    """Etsy OAuth token storage keyed by shop id.

    Implements the ``find_access_token`` / ``store_access_token`` pair that
    :class:`finsync.services.etsy_api_client.EtsyApiClient` calls during its
    token lifecycle.
    """

    def __init__(self, db: Session, shop_id: str):
        self.db = db
        self.shop_id = str(shop_id)

    def _get_row(self) -> Optional[OAuthToken]:
        return self.db.get(OAuthToken, (ETSY_PROVIDER, self.shop_id))

    def find_access_token(self) -> Optional[TokenPair]:
        row = self._get_row()
        if row is None:
            logger.warning("No access token found for shop %s", self.shop_id)
            return None
        if not row.access_token or not row.refresh_token:
            logger.warning("Incomplete token data for shop %s", self.shop_id)
            return None
        return TokenPair(access_token=row.access_token, refresh_token=row.refresh_token)

    def store_access_token(self, tokens: TokenPair) -> None:
        try:
            row = self._get_row()
            if row is None:
                row = OAuthToken(provider=ETSY_PROVIDER, account_id=self.shop_id)
                self.db.add(row)
            row.access_token = tokens.access_token
            row.refresh_token = tokens.refresh_token
            row.updated_at = datetime.now(timezone.utc)
            self.db.commit()
        except Exception:
            logger.error("Failed to store access token for shop %s", self.shop_id, exc_info=True)
            self.db.rollback()
            raise
        logger.info("Stored access token for shop %s", self.shop_id)
