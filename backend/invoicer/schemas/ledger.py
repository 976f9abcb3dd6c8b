"""Wire models for the ledger (QuickBooks Online v3) JSON API.

Field aliases carry the ledger's PascalCase names; Python code uses the
snake_case attributes. Unknown fields in ledger responses are ignored.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer

# The ledger expects JSON numbers, not the strings pydantic emits for Decimal
WireDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

REQUIRED_ADDRESS_FIELDS = ("line1", "city", "region", "postal_code")


class LedgerModel(BaseModel):
    model_config = {"populate_by_name": True}


class LedgerReference(LedgerModel):
    value: str
    name: str | None = None


class LedgerAddress(LedgerModel):
    line1: str | None = Field(default=None, alias="Line1")
    city: str | None = Field(default=None, alias="City")
    region: str | None = Field(default=None, alias="CountrySubDivisionCode")
    postal_code: str | None = Field(default=None, alias="PostalCode")
    country: str | None = Field(default=None, alias="Country")

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_ADDRESS_FIELDS if not (getattr(self, name) or "").strip()]


class LedgerEmailAddress(LedgerModel):
    address: str | None = Field(default=None, alias="Address")


class LedgerCustomer(LedgerModel):
    id: str = Field(alias="Id")
    display_name: str = Field(alias="DisplayName")
    company_name: str | None = Field(default=None, alias="CompanyName")
    primary_email: LedgerEmailAddress | None = Field(default=None, alias="PrimaryEmailAddr")
    bill_address: LedgerAddress | None = Field(default=None, alias="BillAddr")
    active: bool = Field(default=True, alias="Active")

    @property
    def email(self) -> str | None:
        if self.primary_email and self.primary_email.address:
            return self.primary_email.address
        return None

    def missing_address_fields(self) -> list[str]:
        if self.bill_address is None:
            return list(REQUIRED_ADDRESS_FIELDS)
        return self.bill_address.missing_fields()


class LedgerItem(LedgerModel):
    id: str = Field(alias="Id")
    name: str = Field(alias="Name")
    description: str | None = Field(default=None, alias="Description")
    unit_price: Decimal | None = Field(default=None, alias="UnitPrice")
    type: str | None = Field(default=None, alias="Type")
    active: bool = Field(default=True, alias="Active")
    sales_tax_code_ref: LedgerReference | None = Field(default=None, alias="SalesTaxCodeRef")

    @property
    def sales_tax_code_id(self) -> str | None:
        return self.sales_tax_code_ref.value if self.sales_tax_code_ref else None


class LedgerTaxRateDetail(LedgerModel):
    tax_rate_ref: LedgerReference | None = Field(default=None, alias="TaxRateRef")
    tax_type_applicable: str | None = Field(default=None, alias="TaxTypeApplicable")
    tax_order: int | None = Field(default=None, alias="TaxOrder")


class LedgerTaxRateList(LedgerModel):
    details: list[LedgerTaxRateDetail] = Field(default_factory=list, alias="TaxRateDetail")


class LedgerTaxCode(LedgerModel):
    id: str = Field(alias="Id")
    name: str = Field(alias="Name")
    description: str | None = Field(default=None, alias="Description")
    active: bool = Field(default=True, alias="Active")
    taxable: bool | None = Field(default=None, alias="Taxable")
    tax_group: bool | None = Field(default=None, alias="TaxGroup")
    sales_tax_rate_list: LedgerTaxRateList | None = Field(default=None, alias="SalesTaxRateList")

    def sales_tax_rate_ids(self) -> list[str]:
        if self.sales_tax_rate_list is None:
            return []
        return [d.tax_rate_ref.value for d in self.sales_tax_rate_list.details if d.tax_rate_ref]


class LedgerTaxRate(LedgerModel):
    id: str = Field(alias="Id")
    name: str = Field(alias="Name")
    description: str | None = Field(default=None, alias="Description")
    active: bool = Field(default=True, alias="Active")
    rate_value: Decimal = Field(default=Decimal("0"), alias="RateValue")
    agency_ref: LedgerReference | None = Field(default=None, alias="AgencyRef")


class LedgerSalesItemLineDetail(LedgerModel):
    item_ref: LedgerReference | None = Field(default=None, alias="ItemRef")
    qty: WireDecimal | None = Field(default=None, alias="Qty")
    unit_price: WireDecimal | None = Field(default=None, alias="UnitPrice")
    tax_code_ref: LedgerReference | None = Field(default=None, alias="TaxCodeRef")
    tax_inclusive_amt: WireDecimal | None = Field(default=None, alias="TaxInclusiveAmt")


class LedgerInvoiceLine(LedgerModel):
    id: str | None = Field(default=None, alias="Id")
    line_num: int | None = Field(default=None, alias="LineNum")
    amount: WireDecimal = Field(default=Decimal("0"), alias="Amount")
    detail_type: str | None = Field(default="SalesItemLineDetail", alias="DetailType")
    description: str | None = Field(default=None, alias="Description")
    sales_item_line_detail: LedgerSalesItemLineDetail | None = Field(
        default=None, alias="SalesItemLineDetail"
    )

    @property
    def item_code(self) -> str | None:
        detail = self.sales_item_line_detail
        if detail is None or detail.item_ref is None:
            return None
        return detail.item_ref.value


class LedgerTxnTaxDetail(LedgerModel):
    txn_tax_code_ref: LedgerReference | None = Field(default=None, alias="TxnTaxCodeRef")
    total_tax: WireDecimal | None = Field(default=None, alias="TotalTax")


class LedgerInvoiceCreate(LedgerModel):
    customer_ref: LedgerReference = Field(alias="CustomerRef")
    line: list[LedgerInvoiceLine] = Field(default_factory=list, alias="Line")
    txn_date: date | None = Field(default=None, alias="TxnDate")
    due_date: date | None = Field(default=None, alias="DueDate")
    doc_number: str | None = Field(default=None, alias="DocNumber")
    private_note: str | None = Field(default=None, alias="PrivateNote")


class LedgerInvoice(LedgerModel):
    id: str = Field(alias="Id")
    doc_number: str | None = Field(default=None, alias="DocNumber")
    total_amt: Decimal = Field(default=Decimal("0"), alias="TotalAmt")
    txn_tax_detail: LedgerTxnTaxDetail | None = Field(default=None, alias="TxnTaxDetail")
    line: list[LedgerInvoiceLine] = Field(default_factory=list, alias="Line")

    @property
    def total_tax(self) -> Decimal:
        if self.txn_tax_detail is None or self.txn_tax_detail.total_tax is None:
            return Decimal("0")
        return Decimal(self.txn_tax_detail.total_tax)

    def sales_lines(self) -> list[LedgerInvoiceLine]:
        return [line for line in self.line if line.item_code is not None]


class OAuthTokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    x_refresh_token_expires_in: int | None = None


class LedgerConnectionStatus(BaseModel):
    connected: bool
    realm_id: str | None = None
    access_token_expires_at: datetime | None = None


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str


class TaxInfoResponse(BaseModel):
    tax_code_id: str
    tax_code_name: str
    tax_rate: Decimal

    model_config = {"from_attributes": True}
