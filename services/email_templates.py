"""
HTML email templates for notification emails.

Each generator takes plain values and returns an HTML fragment; wrap_email()
puts it inside the shared layout. All interpolated values are escaped.
"""

from html import escape
from typing import Dict, List, Optional

APP_URL = 'https://app.portaprosoftware.com'

COLOR_INFO = '#667eea'
COLOR_WARNING = '#f59e0b'
COLOR_DANGER = '#ef4444'
COLOR_SUCCESS = '#10b981'


def _e(value) -> str:
    return escape('' if value is None else str(value))


def _row(label: str, value) -> str:
    return f"<p><strong>{_e(label)}:</strong> {_e(value)}</p>"


def _button(href: str, label: str) -> str:
    return f'<p style="text-align: center;"><a href="{_e(href)}" class="button">{_e(label)}</a></p>'


def money(amount) -> str:
    return f"${float(amount or 0):,.2f}"


def wrap_email(title: str, body: str, company_name: str = 'PortaPro') -> str:
    """Shared layout: header, content box and footer."""
    return f"""<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #1e3a8a; color: white; padding: 20px; border-radius: 8px 8px 0 0; }}
        .content {{ background: #f9f9f9; padding: 20px; border: 1px solid #ddd; }}
        .info-box {{ background: #fff; border-left: 4px solid {COLOR_INFO}; padding: 12px 16px; margin: 16px 0; }}
        .button {{ display: inline-block; background: {COLOR_INFO}; color: #fff; padding: 10px 20px;
                   border-radius: 4px; text-decoration: none; }}
        .footer {{ font-size: 12px; color: #666; padding: 10px; text-align: center; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h2 style="margin: 0;">{_e(title)}</h2></div>
        <div class="content">
{body}
        </div>
        <div class="footer"><p>This is an automated notification from {_e(company_name)}.</p></div>
    </div>
</body>
</html>"""


def job_assignment_email(job_number: str, customer_name: str, service_type: str,
                         scheduled_date: str, location_address: str, job_id: str,
                         scheduled_time: str = None, special_instructions: str = None) -> str:
    scheduled = scheduled_date + (f" at {scheduled_time}" if scheduled_time else '')
    rows = [
        _row('Job #', job_number),
        _row('Customer', customer_name),
        _row('Service Type', service_type),
        _row('Scheduled', scheduled),
        _row('Location', location_address),
    ]
    if special_instructions:
        rows.append(_row('Special Instructions', special_instructions))

    return (
        "<h2>New Job Assignment</h2>"
        "<p>You have been assigned to a new job:</p>"
        f'<div class="info-box">{"".join(rows)}</div>'
        + _button(f"{APP_URL}/jobs/{job_id}", 'View Job Details')
    )


def route_schedule_change_email(driver_name: str, change_type: str, affected_jobs: List[Dict],
                                original_date: str = None, new_date: str = None,
                                reason: str = None) -> str:
    rows = [_row('Driver', driver_name), _row('Change Type', change_type)]
    if original_date and new_date:
        rows.append(_row('Date Change', f"{original_date} to {new_date}"))
    if reason:
        rows.append(_row('Reason', reason))

    jobs = ''.join(
        f"<li>Job #{_e(job.get('job_number'))} - {_e(job.get('customer_name'))}"
        f"{' at ' + _e(job['new_time']) if job.get('new_time') else ''}</li>"
        for job in affected_jobs
    )
    return (
        "<h2>Route Schedule Change</h2>"
        "<p>Your route schedule has been updated:</p>"
        f'<div class="info-box">{"".join(rows)}</div>'
        f'<h3>Affected Jobs:</h3><ul style="list-style-type: none; padding: 0;">{jobs}</ul>'
        + _button(f"{APP_URL}/schedule", 'View Updated Schedule')
    )


def maintenance_alert_email(vehicle_name: str, vehicle_id: str, maintenance_type: str,
                            priority: str = 'routine', due_date: str = None,
                            current_mileage: int = None, last_service_date: str = None) -> str:
    color = {'routine': COLOR_INFO, 'urgent': COLOR_WARNING, 'critical': COLOR_DANGER}.get(priority, COLOR_INFO)
    status = 'critically overdue' if priority == 'critical' else 'due soon'
    rows = [_row('Vehicle', vehicle_name), _row('Maintenance Type', maintenance_type)]
    if due_date:
        rows.append(_row('Due Date', due_date))
    if current_mileage:
        rows.append(_row('Current Mileage', f"{current_mileage:,} miles"))
    if last_service_date:
        rows.append(_row('Last Service', last_service_date))

    return (
        f'<h2 style="color: {color}">Maintenance Alert</h2>'
        f"<p>Vehicle maintenance is {status}:</p>"
        f'<div class="info-box" style="border-left-color: {color}">{"".join(rows)}</div>'
        + _button(f"{APP_URL}/fleet/vehicles/{vehicle_id}", 'Schedule Maintenance')
    )


def invoice_reminder_email(invoice_number: str, customer_name: str, amount: float,
                           due_date: str, invoice_id: str, days_overdue: int = 0,
                           payment_link: str = None) -> str:
    overdue = days_overdue and days_overdue > 0
    color = COLOR_DANGER if overdue else COLOR_INFO
    heading = 'Overdue' if overdue else 'Upcoming'
    lead = f"This invoice is {days_overdue} days overdue." if overdue else 'This invoice is due soon.'
    rows = [
        _row('Invoice #', invoice_number),
        _row('Customer', customer_name),
        _row('Amount Due', money(amount)),
        _row('Due Date', due_date),
    ]
    button = (_button(payment_link, 'Pay Now') if payment_link
              else _button(f"{APP_URL}/invoices/{invoice_id}", 'View Invoice'))

    return (
        f'<h2 style="color: {color}">{heading} Invoice Payment</h2>'
        f"<p>{_e(lead)}</p>"
        f'<div class="info-box" style="border-left-color: {color}">{"".join(rows)}</div>'
        + button
    )


def payment_confirmation_email(invoice_number: str, customer_name: str, amount_paid: float,
                               payment_method: str, payment_date: str, invoice_id: str,
                               remaining_balance: float = 0) -> str:
    rows = [
        _row('Invoice #', invoice_number),
        _row('Customer', customer_name),
        _row('Amount Paid', money(amount_paid)),
        _row('Payment Method', payment_method or 'N/A'),
        _row('Payment Date', payment_date),
    ]
    if remaining_balance and remaining_balance > 0:
        rows.append(_row('Remaining Balance', money(remaining_balance)))
    else:
        rows.append(f'<p style="color: {COLOR_SUCCESS};"><strong>Status:</strong> Paid in Full</p>')

    return (
        f'<h2 style="color: {COLOR_SUCCESS}">Payment Received</h2>'
        "<p>Thank you! Your payment has been successfully processed.</p>"
        f'<div class="info-box" style="border-left-color: {COLOR_SUCCESS}">{"".join(rows)}</div>'
        + _button(f"{APP_URL}/invoices/{invoice_id}", 'View Receipt')
    )


def low_stock_alert_email(item_name: str, current_quantity: int, threshold: int, item_id: str,
                          item_sku: str = None, suggested_reorder_qty: int = None) -> str:
    if current_quantity == 0:
        color = COLOR_DANGER
    elif current_quantity < threshold / 2:
        color = COLOR_WARNING
    else:
        color = COLOR_INFO
    heading = 'Out of Stock' if current_quantity == 0 else 'Low Stock Alert'
    rows = [_row('Item', item_name)]
    if item_sku:
        rows.append(_row('SKU', item_sku))
    rows.append(_row('Current Stock', f"{current_quantity} units"))
    rows.append(_row('Threshold', f"{threshold} units"))
    if suggested_reorder_qty:
        rows.append(_row('Suggested Reorder', f"{suggested_reorder_qty} units"))

    return (
        f'<h2 style="color: {color}">{heading}</h2>'
        f"<p>Inventory levels are {'depleted' if current_quantity == 0 else 'below threshold'}:</p>"
        f'<div class="info-box" style="border-left-color: {color}">{"".join(rows)}</div>'
        + _button(f"{APP_URL}/inventory/{item_id}", 'Reorder Now')
    )


def vehicle_status_change_email(vehicle_name: str, vehicle_id: str, old_status: str, new_status: str,
                                reason: str = None, impacted_jobs: int = None) -> str:
    out_of_service = 'service' in new_status.lower() or 'maintenance' in new_status.lower()
    color = COLOR_DANGER if out_of_service else COLOR_SUCCESS
    rows = [_row('Vehicle', vehicle_name), _row('Status Change', f"{old_status} to {new_status}")]
    if reason:
        rows.append(_row('Reason', reason))
    if impacted_jobs:
        rows.append(_row('Impacted Jobs', impacted_jobs))

    return (
        f'<h2 style="color: {color}">Vehicle Status Change</h2>'
        "<p>Vehicle status has been updated:</p>"
        f'<div class="info-box" style="border-left-color: {color}">{"".join(rows)}</div>'
        + _button(f"{APP_URL}/fleet/vehicles/{vehicle_id}", 'View Vehicle Details')
    )


def driver_expiration_email(driver_name: str, item_type: str, item_name: str,
                            expiration_date: str, days_until_expiry: int) -> str:
    if days_until_expiry < 0:
        color, lead = COLOR_DANGER, f"expired {abs(days_until_expiry)} days ago"
    elif days_until_expiry == 0:
        color, lead = COLOR_DANGER, 'expires today'
    elif days_until_expiry <= 30:
        color, lead = COLOR_WARNING, f"expires in {days_until_expiry} days"
    else:
        color, lead = COLOR_INFO, f"expires in {days_until_expiry} days"
    rows = [
        _row('Driver', driver_name),
        _row('Item', item_name),
        _row('Type', item_type.replace('_', ' ').title()),
        _row('Expiration Date', expiration_date),
    ]

    return (
        f'<h2 style="color: {color}">Compliance Expiration Notice</h2>'
        f"<p>Your {_e(item_name)} {_e(lead)}. Please renew it and upload the new document.</p>"
        f'<div class="info-box" style="border-left-color: {color}">{"".join(rows)}</div>'
        + _button(f"{APP_URL}/driver/profile", 'Update Documents')
    )


def compliance_digest_email(items: List[Dict]) -> str:
    """Manager digest of driver documents expiring within a week or already expired."""
    rows = []
    for item in items:
        days = item['days_until_expiry']
        color = COLOR_DANGER if days <= 0 else COLOR_WARNING
        status = 'EXPIRED' if days <= 0 else f"{days} days left"
        rows.append(
            f"<tr><td>{_e(item['driver_name'])}</td><td>{_e(item['item_name'])}</td>"
            f'<td style="color: {color}">{_e(status)}</td><td>{_e(item["expiry_date"])}</td></tr>'
        )

    return (
        f'<h2 style="color: {COLOR_DANGER}">Driver Compliance Digest - Critical Items</h2>'
        "<p>The following driver documents require immediate attention:</p>"
        '<table border="1" cellpadding="8" cellspacing="0" style="border-collapse: collapse; width: 100%;">'
        "<thead><tr><th>Driver</th><th>Document</th><th>Status</th><th>Expiry Date</th></tr></thead>"
        f"<tbody>{''.join(rows)}</tbody></table>"
        + _button(f"{APP_URL}/fleet/compliance", 'Review Compliance')
    )


def document_email(doc_label: str, doc_number: str, customer_name: str, total: float,
                   date_label: str, date_value: Optional[str], company_name: str,
                   message: str = None) -> str:
    """Cover email for a quote or invoice sent with its PDF attached."""
    rows = [
        _row(f'{doc_label} #', doc_number),
        _row('Total', money(total)),
    ]
    if date_value:
        rows.append(_row(date_label, date_value))

    intro = _e(message) if message else (
        f"Please find your {doc_label.lower()} {_e(doc_number)} from {_e(company_name)} attached."
    )
    return (
        f"<p>Hi {_e(customer_name)},</p>"
        f"<p>{intro}</p>"
        f'<div class="info-box">{"".join(rows)}</div>'
        "<p>If you have any questions, simply reply to this email.</p>"
    )
