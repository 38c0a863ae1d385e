"""Inventory changes that touch Shopify and the audit log.

A transfer is two separate adjustments with no transaction around them: remove
from the source, then add at the destination. When the second call fails the
first one is reversed. Status demotion and audit records run afterwards as
post-commit hooks whose failures are collected as diagnostics and never change
the outcome.
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from core.errors import InventoryError, UnrecoverableTransferError, ValidationError
from core.models import (
    LogData,
    LogEntry,
    ProductContext,
    ProductStatus,
    TransferOutcome,
    TransferRequest,
    TransferStatus,
)

REQUEST_DECREASE = "Rettifica"
REQUEST_UNDO = "Annullamento"
REQUEST_TRANSFER = "Trasferimento"

Hook = Tuple[str, Callable[[], None]]


def build_log_entry(
    request_type: str,
    context: ProductContext,
    inventory_item_id: str,
    location_name: str,
    delta: int
) -> LogEntry:
    return LogEntry(
        request_type=request_type,
        data=LogData(
            id=context.product_id,
            variant=context.variant_title,
            negozio=location_name,
            inventory_item_id=str(inventory_item_id),
            nome=context.product_name,
            prezzo=context.price,
            rettifica=delta,
            images=list(context.images)
        ),
        timestamp=datetime.now(timezone.utc).isoformat()
    )


class InventoryMover:
    """Adjust stock at the shop locations and record each change."""

    def __init__(self, client, audit_sink=None):
        """Initialize mover.

        Args:
            client: ShopifyClient
            audit_sink: Object with ``create_log(LogEntry)``, e.g. FirestoreClient.
                Audit records are skipped when None.
        """
        self.client = client
        self.audit_sink = audit_sink

    def _run_hooks(self, hooks: List[Hook], outcome: TransferOutcome) -> TransferOutcome:
        for name, hook in hooks:
            try:
                hook()
            except Exception as e:
                message = f"{name} failed: {e}"
                print(f"⚠️ Warning: {message}")
                outcome.diagnostics.append(message)
        return outcome

    def _audit_hook(
        self,
        request_type: str,
        context: ProductContext,
        inventory_item_id: str,
        location_name: str,
        delta: int
    ) -> Optional[Hook]:
        if self.audit_sink is None:
            return None

        def record():
            entry = build_log_entry(request_type, context, inventory_item_id, location_name, delta)
            self.audit_sink.create_log(entry)

        return f"audit log ({request_type} {location_name} {delta:+d})", record

    def _demote_if_exhausted(self, product_id: str, outcome: TransferOutcome):
        if self.client.has_zero_inventory(product_id):
            print("🎯 Product has zero inventory across all locations - setting to draft")
            self.client.update_product_status(product_id, ProductStatus.DRAFT.value)
            outcome.status_changed = "to_draft"
            outcome.product_status = ProductStatus.DRAFT.value

    def transfer(
        self,
        request: TransferRequest,
        context: ProductContext,
        from_name: str,
        to_name: str
    ) -> TransferOutcome:
        """Move stock from one location to another.

        The source is always decremented before the destination is incremented.

        Args:
            request: Item, locations and quantity to move
            context: Product fields copied into the audit records
            from_name: Display name of the source location
            to_name: Display name of the destination location

        Returns:
            TransferOutcome with status COMMITTED, FAILED (nothing changed),
            ROLLED_BACK (source restored) or UNRECOVERABLE (source restore failed)

        Raises:
            ValidationError: If both locations are the same or the quantity is not positive
        """
        if request.from_location_id == request.to_location_id:
            raise ValidationError("Source and destination locations must differ", field="to_location_id")
        if request.quantity_delta <= 0:
            raise ValidationError(
                f"Transfer quantity must be positive, got {request.quantity_delta}",
                field="quantity_delta"
            )

        item_id = request.item_id
        delta = request.quantity_delta

        print(f"🔄 Starting inventory transfer for product: {context.product_name} ({context.variant_title})")
        print(f"📍 From location: {from_name} (ID: {request.from_location_id})")
        print(f"📍 To location: {to_name} (ID: {request.to_location_id})")

        print("📉 Decreasing inventory at source location...")
        try:
            self.client.adjust_inventory(item_id, request.from_location_id, -delta)
        except InventoryError as e:
            print(f"❌ Removal from {from_name} failed: {e}")
            return TransferOutcome(
                status=TransferStatus.FAILED,
                message=f"Errore nella rimozione da {from_name}: {e}"
            )

        print("📈 Increasing inventory at destination location...")
        try:
            self.client.adjust_inventory(item_id, request.to_location_id, delta)
        except InventoryError as original:
            print("❌ Error at destination, rolling back source location...")
            try:
                self.client.adjust_inventory(item_id, request.from_location_id, delta)
            except InventoryError as rollback_error:
                error = UnrecoverableTransferError(str(original), str(rollback_error))
                print(f"🚨 {error}")
                return TransferOutcome(status=TransferStatus.UNRECOVERABLE, message=str(error))

            return TransferOutcome(
                status=TransferStatus.ROLLED_BACK,
                message=f"Errore nell'aggiunta a {to_name}: {original}"
            )

        print("✅ Inventory transfer successful")
        outcome = TransferOutcome(
            status=TransferStatus.COMMITTED,
            message=(
                f"Trasferimento completato: {context.product_name} ({context.variant_title}) "
                f"spostato da {from_name} a {to_name}"
            )
        )

        hooks: List[Hook] = [
            ("zero inventory check", lambda: self._demote_if_exhausted(context.product_id, outcome)),
        ]
        for hook in (
            self._audit_hook(REQUEST_TRANSFER, context, item_id, from_name, -delta),
            self._audit_hook(REQUEST_TRANSFER, context, item_id, to_name, delta),
        ):
            if hook:
                hooks.append(hook)

        return self._run_hooks(hooks, outcome)

    def decrease_with_logging(
        self,
        context: ProductContext,
        inventory_item_id: str,
        location_id: str,
        location_name: str
    ) -> TransferOutcome:
        """Remove one unit at a location, e.g. after a sale.

        The product is set to draft when nothing is left at any location.

        Raises:
            InventoryError: If the adjustment itself fails
        """
        print("📦 Starting inventory decrease with logging:")
        print(f"   🏪 Store: {location_name}")
        print(f"   📦 Product: {context.product_name} ({context.variant_title})")

        print("📉 Adjusting Shopify inventory...")
        self.client.adjust_inventory(inventory_item_id, location_id, -1)
        print("✅ Shopify inventory adjusted successfully")

        outcome = TransferOutcome(
            status=TransferStatus.COMMITTED,
            message="Inventario diminuito e registrato con successo"
        )

        hooks: List[Hook] = [
            ("zero inventory check", lambda: self._demote_if_exhausted(context.product_id, outcome)),
        ]
        audit = self._audit_hook(REQUEST_DECREASE, context, inventory_item_id, location_name, -1)
        if audit:
            hooks.append(audit)

        self._run_hooks(hooks, outcome)
        if outcome.status_changed:
            outcome.message += " - Prodotto impostato come bozza (inventario esaurito)"
        return outcome

    def undo_decrease_with_logging(
        self,
        context: ProductContext,
        inventory_item_id: str,
        location_id: str,
        location_name: str
    ) -> TransferOutcome:
        """Give back one unit removed by ``decrease_with_logging``.

        Zero inventory is checked before the adjustment so a product that was
        demoted for running out is re-activated.

        Raises:
            InventoryError: If the inventory check or the adjustment fails
        """
        print("🔄 Starting inventory undo (increase) with logging:")
        print(f"   🏪 Store: {location_name}")
        print(f"   📦 Product: {context.product_name} ({context.variant_title})")

        had_zero_inventory = self.client.has_zero_inventory(context.product_id)

        print("📈 Adjusting Shopify inventory (undo)...")
        self.client.adjust_inventory(inventory_item_id, location_id, 1)
        print("✅ Shopify inventory adjusted successfully")

        outcome = TransferOutcome(
            status=TransferStatus.COMMITTED,
            message="Inventario ripristinato e registrato con successo"
        )

        def reactivate():
            print("🎯 Product previously had zero inventory - setting back to active")
            self.client.update_product_status(context.product_id, ProductStatus.ACTIVE.value)
            outcome.status_changed = "to_active"
            outcome.product_status = ProductStatus.ACTIVE.value

        hooks: List[Hook] = []
        if had_zero_inventory:
            hooks.append(("product reactivation", reactivate))
        audit = self._audit_hook(REQUEST_UNDO, context, inventory_item_id, location_name, 1)
        if audit:
            hooks.append(audit)

        self._run_hooks(hooks, outcome)
        if outcome.status_changed:
            outcome.message += " - Prodotto riattivato (inventario disponibile)"
        return outcome
