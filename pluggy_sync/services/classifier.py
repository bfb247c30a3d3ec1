"""Account classification into credit, savings or ordinary (checking) buckets."""

from typing import Any, NamedTuple

CREDIT_TYPES = frozenset({"CREDIT"})
CREDIT_SUBTYPES = frozenset({"CREDIT_CARD"})
SAVINGS_SUBTYPES = frozenset({"SAVINGS", "SAVINGS_ACCOUNT"})


class Classification(NamedTuple):
    """Bucket flags for one account. At most one flag is set."""

    is_credit: bool = False
    is_savings: bool = False

    @property
    def bucket(self) -> str:
        """Name of the single selected bucket."""
        if self.is_credit:
            return "credit"
        if self.is_savings:
            return "savings"
        return "ordinary"


def _upper(value: object) -> str:
    return str(value).strip().upper() if value is not None else ""


def classify(raw_account: dict[str, Any]) -> Classification:
    """Classify a raw aggregator account. Credit wins over savings; anything else is ordinary."""
    account_type = _upper(raw_account.get("type"))
    subtype = _upper(raw_account.get("subtype"))
    if account_type in CREDIT_TYPES or subtype in CREDIT_SUBTYPES:
        return Classification(is_credit=True)
    return Classification(is_savings=subtype in SAVINGS_SUBTYPES)
