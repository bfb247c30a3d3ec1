"""Credit-card bill aggregation onto the owning account document."""

from typing import Any

from pluggy_sync.aggregator.base import AggregatorClient
from pluggy_sync.core.errors import AuthError, BillFetchError
from pluggy_sync.core.models import Bill
from pluggy_sync.core.utils import calendar_day, get_logger, safe_number, utcnow_iso
from pluggy_sync.services.batch_writer import BatchedWriter
from pluggy_sync.services.classifier import classify
from pluggy_sync.services.document_store import ACCOUNTS
from pluggy_sync.services.mapper import account_display_name

logger = get_logger("pluggy-sync.bills")

BILL_HISTORY_SIZE = 6
HISTORY_FIELDS = ("id", "dueDate", "totalAmount", "minimumPaymentAmount", "status")


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def normalize_bill(raw: dict[str, Any]) -> Bill:
    """Normalize the field names different institutions use for a bill."""
    bill_id = raw.get("id")
    status = _first(raw, "status", "state")
    return Bill(
        id=str(bill_id) if bill_id is not None else None,
        due_date=calendar_day(_first(raw, "dueDate", "balanceDueDate")),
        total_amount=safe_number(_first(raw, "totalAmount", "amount")),
        minimum_payment_amount=safe_number(_first(raw, "minimumPaymentAmount", "minimumPayment")),
        status=str(status) if status is not None else None,
        close_date=calendar_day(_first(raw, "closeDate", "balanceCloseDate", "closingDate")),
    )


def summarize_bills(raw_bills: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Build currentBill/previousBill/bills fields from raw bills, or None when there are none."""
    bills = [bill for bill in map(normalize_bill, raw_bills) if bill.due_date]
    if not bills:
        return None
    bills.sort(key=lambda bill: bill.due_date, reverse=True)
    dumped = [bill.model_dump(by_alias=True) for bill in bills]
    return {
        "currentBill": dumped[0],
        "previousBill": dumped[1] if len(dumped) > 1 else None,
        "bills": [{field: bill[field] for field in HISTORY_FIELDS} for bill in dumped[:BILL_HISTORY_SIZE]],
    }


class BillAggregator:
    """Fetches bills of credit accounts and merges their summary into the account document."""

    def __init__(self, client: AggregatorClient, writer: BatchedWriter) -> None:
        """Initialize with the aggregator client and the writer used for account updates."""
        self.client = client
        self.writer = writer

    def update_bills(self, account: dict[str, Any]) -> None:
        """Refresh bill fields of one credit account; a fetch failure raises BillFetchError."""
        account_id = str(account.get("id"))
        try:
            raw_bills = self.client.list_bills(account_id)
        except AuthError:
            raise
        except Exception as exc:
            raise BillFetchError(account_id, str(exc)) from exc
        summary = summarize_bills(raw_bills)
        if summary is None:
            logger.info(f"No bills for credit account {account_id}")
            return
        summary["billsUpdatedAt"] = utcnow_iso()
        self.writer.stage_upsert(ACCOUNTS, account_id, summary)
        logger.info(f"Staged {len(summary['bills'])} bills for credit account {account_id}")


def fetch_item_bills(client: AggregatorClient, item_id: str) -> list[dict[str, Any]]:
    """Fetch the bills of every credit account of an item, oldest due date first.

    Nothing is stored. A card whose bills cannot be fetched is reported with an `error` and no bills.
    """
    results = []
    for account in client.list_accounts(item_id):
        classification = classify(account)
        if not classification.is_credit:
            continue
        account_id = str(account.get("id"))
        entry: dict[str, Any] = {"accountId": account_id, "accountName": account_display_name(account, classification)}
        try:
            raw_bills = client.list_bills(account_id)
        except AuthError:
            raise
        except Exception as exc:
            logger.exception(f"Could not fetch bills for credit account {account_id}")
            entry.update({"bills": [], "billsCount": 0, "error": str(exc)})
        else:
            bills = [bill.model_dump(by_alias=True) for bill in map(normalize_bill, raw_bills)]
            bills.sort(key=lambda bill: bill["dueDate"] or "")
            entry.update({"bills": bills, "billsCount": len(bills)})
        results.append(entry)
    return results
