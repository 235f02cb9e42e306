"""Stored Shopify credentials.

The sync core only calls ``get_credential``. Saving happens through the
connect flow (shopsync/services/shopify_connection.py) after a successful
probe, so a stored credential has always answered at least once.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from shopsync.models import ShopifyCredential
from shopsync.security import encrypt_secret
from shopsync.services.shopify_client import get_default_api_version, normalize_store_domain

logger = logging.getLogger(__name__)


def get_credential(db: Session, client_id: str) -> Optional[ShopifyCredential]:
    return db.query(ShopifyCredential).filter(ShopifyCredential.client_id == client_id).first()


def list_credentials(db: Session) -> List[ShopifyCredential]:
    """All stored credentials, oldest first (scheduler iteration order)."""
    return db.query(ShopifyCredential).order_by(ShopifyCredential.created_at, ShopifyCredential.client_id).all()


def upsert_credential(
    db: Session,
    client_id: str,
    store_domain: str,
    access_token: str,
    api_version: Optional[str] = None,
) -> ShopifyCredential:
    """Create or replace the tenant's credential and commit.

    The domain is normalized and the token is Fernet-encrypted before storage.
    """
    credential = get_credential(db, client_id)
    if credential is None:
        credential = ShopifyCredential(client_id=client_id)
        db.add(credential)
        action = "Created"
    else:
        action = "Updated"

    credential.store_domain = normalize_store_domain(store_domain)
    credential.access_token_enc = encrypt_secret(access_token, context=f"shopify:{client_id}")
    credential.api_version = api_version or get_default_api_version()

    db.commit()
    db.refresh(credential)

    logger.info(f"[CREDENTIALS] {action} credential for client={client_id} ({credential.store_domain})")
    return credential
