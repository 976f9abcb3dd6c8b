from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from invoicer.core.database import get_db
from invoicer.core.dependencies import get_ledger_api, get_notifier, get_renderer
from invoicer.models.invoice import Invoice
from invoicer.schemas.invoice import (
    GenerateInvoiceRequest,
    GenerateInvoiceResponse,
    InvoiceResponse,
    PostInvoiceResponse,
    ResendInvoiceRequest,
    ResendInvoiceResponse,
    UpdateDraftItemsRequest,
)
from invoicer.services.invoice_orchestrator import InvoiceOrchestrator
from invoicer.services.ports import InvoiceNotifier, InvoiceRenderer, LedgerApi

router = APIRouter()


def get_orchestrator(
    db: Session = Depends(get_db),
    ledger: LedgerApi = Depends(get_ledger_api),
    renderer: InvoiceRenderer = Depends(get_renderer),
    notifier: InvoiceNotifier = Depends(get_notifier),
) -> InvoiceOrchestrator:
    return InvoiceOrchestrator(db, ledger, renderer, notifier)


def _invoice_to_response(orchestrator: InvoiceOrchestrator, invoice: Invoice) -> dict[str, Any]:
    """Convert Invoice model to response dict with items and deliveries."""
    data: dict[str, Any] = {
        column.name: getattr(invoice, column.name)
        for column in Invoice.__table__.columns
        if column.name != "pdf_content"
    }
    data["has_pdf"] = invoice.pdf_content is not None
    data["items"] = orchestrator.get_items(invoice.id)
    data["email_deliveries"] = orchestrator.get_email_deliveries(invoice.id)
    return data


@router.post(
    "/generate",
    response_model=GenerateInvoiceResponse,
    status_code=201,
    summary="Generate draft invoice from a billing plan",
    responses={
        400: {"description": "Plan inactive or customer address incomplete"},
        404: {"description": "Billing plan or ledger customer not found"},
    },
)
def generate_invoice(
    data: GenerateInvoiceRequest,
    orchestrator: InvoiceOrchestrator = Depends(get_orchestrator),
) -> Any:
    return orchestrator.generate_draft(
        data.billing_plan_id,
        invoice_date=data.invoice_date,
        your_reference=data.your_reference,
        our_reference=data.our_reference,
        account_handler=data.account_handler,
        send_email=data.send_email,
    )


@router.get(
    "/",
    response_model=list[InvoiceResponse],
    summary="List invoices for a billing plan",
    responses={404: {"description": "Billing plan not found"}},
)
def list_invoices(
    billing_plan_id: UUID = Query(),
    orchestrator: InvoiceOrchestrator = Depends(get_orchestrator),
) -> list[dict[str, Any]]:
    return [
        _invoice_to_response(orchestrator, invoice)
        for invoice in orchestrator.list_invoices_for_plan(billing_plan_id)
    ]


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
    responses={404: {"description": "Invoice not found"}},
)
def get_invoice(
    invoice_id: UUID,
    orchestrator: InvoiceOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return _invoice_to_response(orchestrator, orchestrator.get_invoice(invoice_id))


@router.get(
    "/{invoice_id}/pdf",
    summary="Download invoice PDF",
    responses={404: {"description": "Invoice not found or not rendered"}},
)
def download_invoice_pdf(
    invoice_id: UUID,
    orchestrator: InvoiceOrchestrator = Depends(get_orchestrator),
) -> Response:
    invoice = orchestrator.get_invoice(invoice_id)
    pdf = orchestrator.get_invoice_pdf(invoice_id)
    if pdf is None:
        raise HTTPException(status_code=404, detail="Invoice PDF has not been rendered")
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="invoice-{invoice.invoice_number}.pdf"'
        },
    )


@router.post(
    "/{invoice_id}/post",
    response_model=PostInvoiceResponse,
    summary="Post draft invoice to the ledger",
    responses={
        401: {"description": "Ledger not connected"},
        404: {"description": "Invoice not found"},
        409: {"description": "Invoice is not a draft"},
        502: {"description": "Ledger rejected the invoice"},
    },
)
def post_invoice(
    invoice_id: UUID,
    orchestrator: InvoiceOrchestrator = Depends(get_orchestrator),
) -> Any:
    return orchestrator.post_to_ledger(invoice_id)


@router.post(
    "/{invoice_id}/reset",
    response_model=InvoiceResponse,
    summary="Return a failed invoice to draft",
    responses={
        404: {"description": "Invoice not found"},
        409: {"description": "Invoice is not failed"},
    },
)
def reset_invoice(
    invoice_id: UUID,
    orchestrator: InvoiceOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    invoice = orchestrator.reset_failed_to_draft(invoice_id)
    return _invoice_to_response(orchestrator, invoice)


@router.put(
    "/{invoice_id}/items",
    response_model=InvoiceResponse,
    summary="Edit draft invoice item descriptions",
    responses={
        404: {"description": "Invoice or item not found"},
        409: {"description": "Invoice is not a draft"},
    },
)
def update_invoice_items(
    invoice_id: UUID,
    data: UpdateDraftItemsRequest,
    orchestrator: InvoiceOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    invoice = orchestrator.update_draft_items(invoice_id, data.items)
    return _invoice_to_response(orchestrator, invoice)


@router.post(
    "/{invoice_id}/resend",
    response_model=ResendInvoiceResponse,
    summary="Email the invoice PDF again",
    responses={
        400: {"description": "No recipient email address"},
        404: {"description": "Invoice not found"},
        409: {"description": "Invoice has no rendered PDF"},
    },
)
def resend_invoice(
    invoice_id: UUID,
    data: ResendInvoiceRequest | None = Body(default=None),
    orchestrator: InvoiceOrchestrator = Depends(get_orchestrator),
) -> Any:
    recipient = data.recipient_email if data else None
    return orchestrator.resend_email(invoice_id, recipient)
