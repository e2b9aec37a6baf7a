"""Tenant-scoped name -> id resolution for asset reference entities."""

import logging
from typing import Optional
from uuid import UUID

from ..errors import ValidationError
from ..schema import REFERENCE_KINDS

logger = logging.getLogger(__name__)


class EntityResolver:
    """
    Resolves free-text model, vendor and location names to entity ids.

    Matching is case-insensitive on the entity name and always scoped to one
    tenant. The resolver never creates entities: an unknown name resolves to
    None and the row still imports with a null reference.

    There is no cache; repeated names in a batch issue repeated lookups.
    """

    def __init__(self, db):
        """
        Args:
            db: DatabaseClient providing find_reference_id()
        """
        self.db = db

    def resolve(self, tenant_id: UUID, kind: str, name: Optional[str]) -> Optional[UUID]:
        """
        Resolve a reference name to an id within the tenant.

        Args:
            tenant_id: Tenant scope
            kind: One of "model", "vendor", "location"
            name: Free-text name from the import row

        Returns:
            Id of the first matching entity, or None if nothing matches

        Raises:
            ValidationError: If kind is not a resolvable reference kind
        """
        if kind not in REFERENCE_KINDS:
            raise ValidationError(
                f"Unknown reference kind '{kind}'. Expected one of: {', '.join(REFERENCE_KINDS)}"
            )

        if name is None or not str(name).strip():
            return None

        entity_id = self.db.find_reference_id(
            tenant_id=tenant_id,
            kind=kind,
            name=str(name).strip()
        )

        if entity_id is None:
            logger.debug(f"Unresolved {kind} '{name}' for tenant {tenant_id}")

        return entity_id
