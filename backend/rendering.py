from __future__ import annotations

import html
from datetime import date, datetime
from typing import Union

from billing.models import Customer, DocumentTotals, Invoice, LineItem, Quotation


def _fmt_dt(value: datetime | date | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M UTC")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _customer_block(customer: Customer | None) -> str:
    if customer is None:
        return ""
    escape = html.escape
    lines = [customer.name, customer.email, customer.phone, customer.address]
    body = "".join(f"<p style=\"margin:2px 0; color:#334155;\">{escape(line)}</p>" for line in lines if line)
    return f"""
    <section style="margin-top:16px;">
      <h2 style="margin:0 0 4px 0; font-size:16px; color:#0f172a;">Bill to</h2>
      {body}
    </section>
    """


def _items_table(items: tuple[LineItem, ...]) -> str:
    escape = html.escape
    rows = []
    for item in items:
        total = item.unit_price.multiply(item.quantity)
        rows.append(
            f"""
            <tr style="border-bottom:1px solid #e2e8f0;">
              <td style="padding:8px; color:#0f172a;">{escape(item.description)}</td>
              <td style="padding:8px; color:#334155;">{escape(item.category)}</td>
              <td style="padding:8px; text-align:right;">{item.quantity}</td>
              <td style="padding:8px; text-align:right;">{escape(item.unit_price.format())}</td>
              <td style="padding:8px; text-align:right; font-weight:600;">{escape(total.format())}</td>
            </tr>
            """
        )
    return f"""
    <table style="width:100%; border-collapse:collapse; margin-top:16px; font-size:14px;">
      <thead style="background:#f1f5f9; color:#0f172a;">
        <tr>
          <th style="text-align:left; padding:8px;">Description</th>
          <th style="text-align:left; padding:8px;">Category</th>
          <th style="text-align:right; padding:8px;">Qty</th>
          <th style="text-align:right; padding:8px;">Unit price</th>
          <th style="text-align:right; padding:8px;">Total</th>
        </tr>
      </thead>
      <tbody>
        {''.join(rows)}
      </tbody>
    </table>
    """


def _totals_block(totals: DocumentTotals, tax_rate) -> str:
    return f"""
    <section style="margin-top:16px; padding:12px; background:#f8fafc; border:1px solid #e2e8f0; border-radius:8px;">
      <p style="margin:4px 0;">Subtotal: {html.escape(totals.subtotal.format())}</p>
      <p style="margin:4px 0;">Discount: {html.escape(totals.discount_amount.format())}</p>
      <p style="margin:4px 0;">Tax ({tax_rate}%): {html.escape(totals.tax_amount.format())}</p>
      <p style="margin:4px 0; font-weight:600;">Grand total: {html.escape(totals.grand_total.format())}</p>
    </section>
    """


def render_quotation_html(quotation: Quotation) -> str:
    escape = html.escape
    header = f"""
    <header style="padding:16px 0; border-bottom:1px solid #e2e8f0;">
      <h1 style="margin:0; font-size:24px; color:#0f172a;">Quotation {escape(quotation.number)}</h1>
      <p style="margin:4px 0; color:#475569;">Status: {escape(quotation.status)} &bull; Valid until: {_fmt_dt(quotation.valid_until)}</p>
    </header>
    """
    notes = f"<p style=\"margin-top:16px; color:#475569;\">{escape(quotation.notes)}</p>" if quotation.notes else ""
    return _page(
        f"Quotation {quotation.number}",
        header
        + _customer_block(quotation.customer)
        + _items_table(quotation.items)
        + _totals_block(quotation.totals, quotation.tax_rate)
        + notes,
    )


def render_invoice_html(invoice: Invoice) -> str:
    escape = html.escape
    overdue = (
        f" &bull; <span style=\"color:#b91c1c;\">Overdue by {invoice.days_overdue} day(s)</span>"
        if invoice.is_overdue
        else ""
    )
    header = f"""
    <header style="padding:16px 0; border-bottom:1px solid #e2e8f0;">
      <h1 style="margin:0; font-size:24px; color:#0f172a;">{escape(invoice.type.replace('-', ' ').title())} {escape(invoice.number)}</h1>
      <p style="margin:4px 0; color:#475569;">Status: {escape(invoice.status)} &bull; Due: {_fmt_dt(invoice.due_date)}{overdue}</p>
      <p style="margin:4px 0; color:#475569;">Issued: {_fmt_dt(invoice.issued_at)}</p>
    </header>
    """
    ledger = f"""
    <section style="margin-top:16px; padding:12px; border:1px solid #e2e8f0; border-radius:8px;">
      <p style="margin:4px 0;">Paid: {escape(invoice.amount_paid.format())}</p>
      <p style="margin:4px 0;">Credited: {escape(invoice.amount_credited.format())}</p>
      <p style="margin:4px 0; font-weight:600;">Balance due: {escape(invoice.balance.format())}</p>
    </section>
    """
    return _page(
        f"Invoice {invoice.number}",
        header
        + _customer_block(invoice.customer)
        + _items_table(invoice.items)
        + _totals_block(invoice.totals, invoice.tax_rate)
        + ledger,
    )


def _page(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
      <head>
        <meta charset="utf-8" />
        <title>{html.escape(title)}</title>
      </head>
      <body style="font-family: Arial, sans-serif; padding:24px; background:#ffffff;">
        {body}
      </body>
    </html>
    """


class HtmlDocumentRenderer:
    """Renders quotations and invoices as UTF-8 HTML."""

    def render(self, document: Union[Quotation, Invoice]) -> bytes:
        if isinstance(document, Invoice):
            return render_invoice_html(document).encode("utf-8")
        return render_quotation_html(document).encode("utf-8")
