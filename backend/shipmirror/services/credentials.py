from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from shipmirror.config import settings
from shipmirror.models_sqlalchemy.models import Client, ClientApiCredential


def list_active_clients(db: Session, client_ids: Optional[Sequence[str]] = None) -> List[Client]:
    query = db.query(Client).filter(Client.is_active.is_(True))
    if client_ids:
        query = query.filter(Client.id.in_(list(client_ids)))
    return query.order_by(Client.company_name.asc(), Client.id.asc()).all()


def get_credential(db: Session, client_id: str) -> Optional[str]:
    """Return the client's provider token, or None when it has none."""
    cred = (
        db.query(ClientApiCredential)
        .filter(
            ClientApiCredential.client_id == client_id,
            ClientApiCredential.provider == settings.PROVIDER_NAME,
        )
        .first()
    )
    if not cred or not (cred.api_token or "").strip():
        return None
    return cred.api_token.strip()
