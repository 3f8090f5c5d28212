"""
MJML Email Templates
Clinic email templates using MJML for responsive, cross-client compatibility
"""

from typing import Optional

from .config import CLINIC_NAME, FRONTEND_URL

# Clinic theme colors
THEME = {
    "primary": "#0ea5e9",
    "primary_dark": "#0369a1",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 20px 0 20px">
          <mj-column>
            <mj-text font-size="20px" font-weight="700" color="{THEME['primary_dark']}" padding="0">
              {CLINIC_NAME}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="24px 0 0 0" />
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="24px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              This is an automated message from {CLINIC_NAME}. Please do not reply.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def password_reset_template(user_name: str, reset_link: str) -> str:
    content = f"""
    <mj-text>
      Hi {user_name},
    </mj-text>

    <mj-text>
      We received a request to reset the password for your account. The link below expires in one hour.
    </mj-text>

    <mj-text color="{THEME['text_muted']}" font-size="14px">
      If you did not request a password reset, you can safely ignore this email.
    </mj-text>
    """

    return get_base_template(
        title="Reset Your Password",
        preview_text="Use this link to choose a new password",
        content_sections=content,
        cta_url=reset_link,
        cta_label="Reset Password",
    )


def appointment_reminder_template(
    patient_name: str, service_name: str, appointment_date: str, time_slot: str, reference_code: str
) -> str:
    content = f"""
    <mj-text>
      Hi {patient_name},
    </mj-text>

    <mj-text>
      This is a reminder of your dental appointment tomorrow.
    </mj-text>

    <mj-table font-size="15px" padding="8px 0 16px 0">
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">Service</td><td>{service_name}</td></tr>
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">Date</td><td>{appointment_date}</td></tr>
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">Time</td><td>{time_slot}</td></tr>
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">Reference</td><td><strong>{reference_code}</strong></td></tr>
    </mj-table>

    <mj-text>
      Please arrive on time and present your reference code at the front desk.
    </mj-text>
    """

    return get_base_template(
        title="Appointment Reminder",
        preview_text=f"Your appointment on {appointment_date} at {time_slot}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/patient/appointments",
        cta_label="View My Appointments",
    )


def refund_deadline_alert_template(overdue: list[dict]) -> str:
    rows = "".join(
        f"<tr><td style=\"padding: 4px 8px 4px 0;\">#{r['id']}</td>"
        f"<td style=\"padding: 4px 8px;\">{r['patient_name']}</td>"
        f"<td style=\"padding: 4px 8px;\">PHP {r['refund_amount']:.2f}</td>"
        f"<td style=\"padding: 4px 0 4px 8px; color: {THEME['danger']};\">{r['deadline_at']}</td></tr>"
        for r in overdue
    )
    content = f"""
    <mj-text>
      The following refund requests are past their processing deadline:
    </mj-text>

    <mj-table font-size="14px" padding="8px 0 16px 0">
      <tr style="text-align: left; color: {THEME['text_muted']};">
        <th>ID</th><th>Patient</th><th>Amount</th><th>Deadline</th>
      </tr>
      {rows}
    </mj-table>
    """

    return get_base_template(
        title="Overdue Refund Requests",
        preview_text=f"{len(overdue)} refund request(s) need attention",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/admin/refund-requests",
        cta_label="Review Refund Requests",
    )


def inventory_near_expiry_template(batches: list[dict], near_expiry_days: int) -> str:
    rows = "".join(
        f"<tr><td style=\"padding: 4px 8px 4px 0;\">{b['item_name']}</td>"
        f"<td style=\"padding: 4px 8px;\">{b['lot_number'] or '-'}</td>"
        f"<td style=\"padding: 4px 8px;\">{b['qty_on_hand']:g}</td>"
        f"<td style=\"padding: 4px 0 4px 8px; color: {THEME['warning']};\">{b['expiry_date']}</td></tr>"
        for b in batches
    )
    content = f"""
    <mj-text>
      These batches still have stock and expire within {near_expiry_days} days:
    </mj-text>

    <mj-table font-size="14px" padding="8px 0 16px 0">
      <tr style="text-align: left; color: {THEME['text_muted']};">
        <th>Item</th><th>Lot</th><th>On hand</th><th>Expires</th>
      </tr>
      {rows}
    </mj-table>
    """

    return get_base_template(
        title="Inventory Near Expiry",
        preview_text=f"{len(batches)} batch(es) expiring soon",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/admin/inventory",
        cta_label="Open Inventory",
    )


def no_show_warning_template(patient_name: str, no_show_count: int, message: str) -> str:
    content = f"""
    <mj-text>
      Hi {patient_name},
    </mj-text>

    <mj-text>
      {message}
    </mj-text>

    <mj-text color="{THEME['text_muted']}" font-size="14px">
      Missed appointments on record: {no_show_count}
    </mj-text>
    """

    return get_base_template(
        title="Missed Appointment Notice",
        preview_text="About your recent missed appointments",
        content_sections=content,
    )


def low_stock_alert_template(item_name: str, on_hand: float, threshold: int, unit: str) -> str:
    content = f"""
    <mj-text>
      <strong>{item_name}</strong> is running low.
    </mj-text>

    <mj-table font-size="15px" padding="8px 0 16px 0">
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">On hand</td><td style="color: {THEME['danger']};">{on_hand:g} {unit}</td></tr>
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">Threshold</td><td>{threshold} {unit}</td></tr>
    </mj-table>
    """

    return get_base_template(
        title="Low Stock Alert",
        preview_text=f"{item_name}: {on_hand:g} {unit} left",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/admin/inventory",
        cta_label="Receive Stock",
    )


def visit_code_template(dentist_name: str, patient_name: str, service_name: str, visit_code: str, started: str) -> str:
    content = f"""
    <mj-text>
      Hi {dentist_name},
    </mj-text>

    <mj-text>
      A patient is ready for you. Enter this visit code to open the consultation:
    </mj-text>

    <mj-text align="center" font-size="28px" font-weight="700" letter-spacing="6px" color="{THEME['primary']}">
      {visit_code}
    </mj-text>

    <mj-table font-size="15px" padding="8px 0 16px 0">
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">Patient</td><td>{patient_name}</td></tr>
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">Service</td><td>{service_name}</td></tr>
      <tr><td style="padding: 4px 0; color: {THEME['text_muted']};">Started</td><td>{started}</td></tr>
    </mj-table>
    """

    return get_base_template(
        title="New Patient Visit",
        preview_text=f"Visit code {visit_code} for {patient_name}",
        content_sections=content,
    )
