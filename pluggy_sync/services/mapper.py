"""Mapping of raw aggregator records into stored documents.

Accounts become one document per aggregator account. Transactions are routed to the collection of their account's bucket: credit-card transactions, investment-marked transactions for savings accounts, and ordinary transactions otherwise. Amounts are stored as magnitudes; the sign only survives in `type`.
"""

from typing import Any, NamedTuple

from pluggy_sync.core.utils import calendar_day, day_of_month, safe_number
from pluggy_sync.services.classifier import Classification
from pluggy_sync.services.document_store import CREDIT_CARD_TRANSACTIONS, INVESTMENTS, TRANSACTIONS

IMPORT_SOURCE = "pluggy"
UNCATEGORIZED = "Uncategorized"
DEFAULT_ACCOUNT_NAME = "Conta"
DEFAULT_CARD_NAME = "Cartao de Credito"
DEFAULT_DESCRIPTION = "Lancamento"


class MappedDocument(NamedTuple):
    """A document ready to be staged, with its target collection and id."""

    collection: str
    doc_id: str | None
    data: dict[str, Any]


def target_collection(classification: Classification) -> str:
    """Select the transaction collection for an account bucket."""
    if classification.is_credit:
        return CREDIT_CARD_TRANSACTIONS
    if classification.is_savings:
        return INVESTMENTS
    return TRANSACTIONS


def account_display_name(raw_account: dict[str, Any], classification: Classification) -> str:
    """Pick the most human-friendly name the aggregator gave the account."""
    fallback = DEFAULT_CARD_NAME if classification.is_credit else DEFAULT_ACCOUNT_NAME
    return raw_account.get("marketingName") or raw_account.get("name") or fallback


def map_account(raw_account: dict[str, Any], classification: Classification, synced_at: str) -> dict[str, Any]:
    """Build the Account document for a raw aggregator account."""
    connector = raw_account.get("connector") or {}
    doc: dict[str, Any] = {
        "id": raw_account.get("id"),
        "name": account_display_name(raw_account, classification),
        "type": raw_account.get("type"),
        "subtype": raw_account.get("subtype"),
        "number": raw_account.get("number"),
        "balance": safe_number(raw_account.get("balance"), 0.0),
        "currency": raw_account.get("currencyCode") or "BRL",
        "institution": connector.get("name") if isinstance(connector, dict) else None,
        "itemId": raw_account.get("itemId"),
        "connectionMode": "AUTO",
        "isCredit": classification.is_credit,
        "isSavings": classification.is_savings,
        "updatedAt": synced_at,
    }
    if classification.is_credit:
        doc.update(credit_fields(raw_account.get("creditData") or {}))
    return doc


def credit_fields(credit_data: dict[str, Any]) -> dict[str, Any]:
    """Derive limit and billing-cycle fields from the aggregator's creditData."""
    credit_limit = safe_number(credit_data.get("creditLimit"))
    available = safe_number(credit_data.get("availableCreditLimit"))
    used = credit_limit - available if credit_limit is not None and available is not None else None
    return {
        "creditLimit": credit_limit,
        "availableCreditLimit": available,
        "usedCreditLimit": used,
        "closingDay": day_of_month(credit_data.get("balanceCloseDate")),
        "dueDay": day_of_month(credit_data.get("balanceDueDate")),
        "brand": credit_data.get("brand"),
    }


def _status(raw_status: object) -> str:
    return "pending" if str(raw_status or "").upper() == "PENDING" else "completed"


def map_transaction(
    raw_tx: dict[str, Any], account: dict[str, Any], classification: Classification, synced_at: str | None = None
) -> MappedDocument:
    """Convert a raw aggregator transaction into the document shape of its account's bucket."""
    raw_amount = safe_number(raw_tx.get("amount"), 0.0)
    provider_id = raw_tx.get("id")
    name = account_display_name(account, classification)
    data: dict[str, Any] = {
        "providerId": provider_id,
        "description": raw_tx.get("description") or raw_tx.get("descriptionRaw") or DEFAULT_DESCRIPTION,
        "amount": abs(raw_amount),
        "type": "expense" if raw_amount < 0 else "income",
        "date": calendar_day(raw_tx.get("date")),
        "category": raw_tx.get("category") or UNCATEGORIZED,
        "status": _status(raw_tx.get("status")),
        "importSource": IMPORT_SOURCE,
        "providerItemId": account.get("itemId"),
        "syncedAt": synced_at,
        "raw": raw_tx,
    }
    if classification.is_credit:
        meta = raw_tx.get("creditCardMetadata") or {}
        data.update(
            {
                "cardId": account.get("id"),
                "cardName": name,
                "installmentNumber": meta.get("installmentNumber") or 0,
                "totalInstallments": meta.get("totalInstallments") or 0,
                "billId": meta.get("billId"),
            }
        )
    else:
        data.update({"accountId": account.get("id"), "accountName": name})
        if classification.is_savings:
            data["isInvestment"] = True
    doc_id = str(provider_id) if provider_id else None
    return MappedDocument(target_collection(classification), doc_id, data)
