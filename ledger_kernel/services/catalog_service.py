"""
Service layer for parties (customers, suppliers) and catalog items
(products, raw materials).

Master-data screens are outside the kernel; this service exists so that
settlement operations resolve real rows and so seeding and tests can
create them.  Lookups used by the orchestrator raise NotFoundError for a
missing row *or* a row of the wrong kind (a supplier id passed as a
customer is not a customer).

Returns PartyInfo / CatalogItemInfo DTOs from public creators; the
``require_*`` resolvers return ORM rows for use inside a unit of work.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import CatalogItemInfo, PartyInfo
from ledger_kernel.domain.values import ItemKind, PartyType
from ledger_kernel.exceptions import NotFoundError, ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.catalog import CatalogItem
from ledger_kernel.models.party import Party
from ledger_kernel.services.base import BaseService

logger = get_logger("services.catalog")

_PARTY_LABELS = {PartyType.CUSTOMER: "Customer", PartyType.SUPPLIER: "Supplier"}
_ITEM_LABELS = {ItemKind.PRODUCT: "Product", ItemKind.MATERIAL: "RawMaterial"}


class CatalogService(BaseService[CatalogItem]):
    """Create and resolve parties and catalog items."""

    # -------------------------------------------------------------------------
    # Parties
    # -------------------------------------------------------------------------

    def create_party(
        self,
        party_code: str,
        party_type: PartyType,
        name: str,
        actor_id: UUID,
    ) -> PartyInfo:
        """
        Create a customer or supplier.

        Raises:
            ValidationError: on a blank code or name, or a duplicate code.
        """
        if not party_code or not party_code.strip():
            raise ValidationError("party_code", "must not be empty")
        if not name or not name.strip():
            raise ValidationError("name", "must not be empty")
        existing = self.session.execute(
            select(Party.id).where(Party.party_code == party_code)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError("party_code", f"'{party_code}' already exists")

        party = Party(
            party_code=party_code,
            party_type=party_type,
            name=name,
            credit_balance=Decimal("0"),
            created_by_id=actor_id,
        )
        self.session.add(party)
        self.session.flush()
        logger.info(
            "party_created",
            extra={"party_id": str(party.id), "party_type": PartyType(party_type).value},
        )
        return PartyInfo.from_model(party)

    def require_party(
        self,
        party_id: UUID,
        party_type: PartyType,
        for_update: bool = False,
    ) -> Party:
        """
        Resolve an active party of the given type.

        With ``for_update`` the row is locked (SELECT ... FOR UPDATE) and
        re-read, which serializes credit-balance work per customer.
        """
        stmt = select(Party).where(Party.id == party_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        party = self.session.execute(stmt).scalar_one_or_none()
        if party is None or party.party_type != party_type or not party.is_active:
            raise NotFoundError(_PARTY_LABELS[party_type], str(party_id))
        return party

    # -------------------------------------------------------------------------
    # Catalog items
    # -------------------------------------------------------------------------

    def create_item(
        self,
        item_code: str,
        item_kind: ItemKind,
        name: str,
        actor_id: UUID,
        unit: str | None = None,
        unit_price: Decimal | None = None,
    ) -> CatalogItemInfo:
        """
        Create a product or raw material.

        Raises:
            ValidationError: on a blank code or name, a negative price, or a
                duplicate code.
        """
        if not item_code or not item_code.strip():
            raise ValidationError("item_code", "must not be empty")
        if not name or not name.strip():
            raise ValidationError("name", "must not be empty")
        if unit_price is not None and unit_price < 0:
            raise ValidationError("unit_price", "must not be negative")
        existing = self.session.execute(
            select(CatalogItem.id).where(CatalogItem.item_code == item_code)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError("item_code", f"'{item_code}' already exists")

        item = CatalogItem(
            item_code=item_code,
            item_kind=item_kind,
            name=name,
            unit=unit,
            unit_price=unit_price,
            created_by_id=actor_id,
        )
        self.session.add(item)
        self.session.flush()
        logger.info(
            "catalog_item_created",
            extra={"item_id": str(item.id), "item_kind": ItemKind(item_kind).value},
        )
        return CatalogItemInfo.from_model(item)

    def require_item(self, item_id: UUID, item_kind: ItemKind) -> CatalogItem:
        """Resolve an active catalog item of the given kind."""
        item = self.session.get(CatalogItem, item_id)
        if item is None or item.item_kind != item_kind or not item.is_active:
            raise NotFoundError(_ITEM_LABELS[ItemKind(item_kind)], str(item_id))
        return item
