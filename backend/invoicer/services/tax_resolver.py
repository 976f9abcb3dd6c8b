"""Resolve ledger tax codes into an effective percentage rate."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from invoicer.services.ports import LedgerApi

logger = logging.getLogger(__name__)


@dataclass
class TaxInfo:
    """A tax code and the sum of its sales tax rate components."""

    tax_code_id: str
    tax_code_name: str
    tax_rate: Decimal


class TaxResolver:
    def __init__(self, ledger: LedgerApi):
        self.ledger = ledger

    def resolve_rate(self, tax_code_id: str | None) -> TaxInfo | None:
        """Sum the RateValue of every sales rate on the tax code.

        Returns None when the code is empty or unknown to the ledger.
        Components that cannot be fetched contribute nothing.
        """
        if not tax_code_id:
            return None

        tax_code = self.ledger.get_tax_code(tax_code_id)
        if tax_code is None:
            logger.warning("Tax code %s not found in ledger", tax_code_id)
            return None

        total = Decimal("0")
        for rate_id in tax_code.sales_tax_rate_ids():
            rate = self.ledger.get_tax_rate(rate_id)
            if rate is None:
                logger.warning("Tax rate %s on code %s not found", rate_id, tax_code_id)
                continue
            total += Decimal(rate.rate_value)

        return TaxInfo(tax_code_id=tax_code.id, tax_code_name=tax_code.name, tax_rate=total)

    def rate_or_zero(self, tax_code_id: str | None) -> Decimal:
        info = self.resolve_rate(tax_code_id)
        return info.tax_rate if info is not None else Decimal("0")
