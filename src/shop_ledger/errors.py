"""Exception types shared by the repository and invoicing layers."""


class ShopLedgerError(Exception):
    """Base exception for Shop-Ledger operations."""


class StoreWriteError(ShopLedgerError):
    """A write to the backing store failed; the operation was rolled back."""


class InvoiceNotFoundError(StoreWriteError):
    """The target invoice does not exist."""

    def __init__(self, invoice_id):
        super().__init__(f"Invoice {invoice_id} not found")
        self.invoice_id = invoice_id


class ValidationError(ShopLedgerError, ValueError):
    """Input data is malformed or a required linkage is missing."""


class PartialSideEffectFailure(ShopLedgerError):
    """A per-item inventory or task side effect failed.

    Recorded on the affected ``SideEffectOutcome`` rather than raised, so
    the remaining items of the invoice are still processed.
    """

    def __init__(self, item_description: str, action: str, reason: str):
        super().__init__(
            f"{action} failed for item '{item_description}': {reason}"
        )
        self.item_description = item_description
        self.action = action
        self.reason = reason
