"""
Receipt PDF Generator
Builds receipt data for appointments, visits and payments and renders it with reportlab
"""

import io
import logging
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A5
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from ...config import CLINIC_ADDRESS, CLINIC_EMAIL, CLINIC_NAME, CLINIC_PHONE
from ...models import Appointment, Patient, Payment
from ...models_visit import PatientVisit
from ...shared.timeutils import clinic_now
from ..catalog.pricing import calculate_total_price, format_teeth, get_price_for_date, teeth_type_description
from ..refunds.repository import RefundRepository

logger = logging.getLogger(__name__)


def _clinic_block() -> dict:
    now = clinic_now()
    return {
        "clinic_name": CLINIC_NAME,
        "clinic_address": CLINIC_ADDRESS,
        "clinic_phone": CLINIC_PHONE,
        "clinic_email": CLINIC_EMAIL,
        "receipt_date": now.strftime("%B %d, %Y"),
        "receipt_time": now.strftime("%I:%M %p"),
    }


def _patient_block(patient: Optional[Patient]) -> dict:
    if not patient:
        return {"patient_name": "-", "patient_email": None, "patient_phone": None, "patient_address": None}
    return {
        "patient_name": f"{patient.first_name} {patient.last_name}",
        "patient_email": patient.user.email if patient.user else None,
        "patient_phone": patient.contact_number,
        "patient_address": patient.address,
    }


def _payment_rows(payments: list[Payment]) -> list[dict]:
    return [
        {
            "method": p.method,
            "status": p.status,
            "amount": float(p.amount_paid or 0),
            "reference": p.reference_no or f"PAY-{p.id}",
            "paid_at": p.paid_at.strftime("%Y-%m-%d %H:%M") if p.paid_at else None,
        }
        for p in payments
        if p.status == "paid"
    ]


def appointment_receipt_data(db: Session, appointment: Appointment) -> dict:
    service = appointment.service
    unit = get_price_for_date(db, service, appointment.date) if service else 0.0
    total = unit * appointment.teeth_count if service and service.per_teeth_service and appointment.teeth_count else unit
    payments = _payment_rows(appointment.payments)

    data = {
        "receipt_type": "appointment",
        "receipt_number": f"RCP-A-{appointment.id:06d}",
        **_clinic_block(),
        **_patient_block(appointment.patient),
        "service_name": service.name if service else "-",
        "service_description": service.description if service else None,
        "service_date": appointment.date.strftime("%B %d, %Y"),
        "service_time": appointment.time_slot,
        "teeth_description": f"{appointment.teeth_count} teeth" if appointment.teeth_count else None,
        "appointment_status": appointment.status,
        "payment_status": appointment.payment_status,
        "reference_code": appointment.reference_code,
        "total_amount": round(float(total), 2),
        "payments": payments,
        "total_paid": round(sum(p["amount"] for p in payments), 2),
    }

    refund = RefundRepository.for_appointment(db, appointment.id)
    if refund:
        data["refund_request"] = {
            "status": refund.status,
            "original_amount": float(refund.original_amount or 0),
            "cancellation_fee": float(refund.cancellation_fee or 0),
            "refund_amount": float(refund.refund_amount or 0),
            "reason": refund.reason,
            "processed_at": refund.processed_at.strftime("%Y-%m-%d %H:%M") if refund.processed_at else None,
        }
    return data


def visit_receipt_data(db: Session, visit: PatientVisit) -> dict:
    service = visit.service
    service_amount = 0.0
    if service:
        unit = get_price_for_date(db, service, visit.visit_date)
        service_amount = float(calculate_total_price(service, unit, visit.teeth_treated))

    payment_query = db.query(Payment).filter(Payment.patient_visit_id == visit.id)
    payments = list(payment_query.all())
    if visit.appointment_id:
        payments += db.query(Payment).filter(Payment.appointment_id == visit.appointment_id).all()
    rows = _payment_rows(payments)

    return {
        "receipt_type": "visit",
        "receipt_number": f"RCP-V-{visit.id:06d}",
        **_clinic_block(),
        **_patient_block(visit.patient),
        "service_name": service.name if service else "-",
        "service_description": service.description if service else None,
        "visit_date": visit.visit_date.strftime("%B %d, %Y"),
        "start_time": visit.start_time.strftime("%I:%M %p") if visit.start_time else None,
        "end_time": visit.end_time.strftime("%I:%M %p") if visit.end_time else None,
        "visit_status": visit.status,
        "teeth_treated": format_teeth(visit.teeth_treated) or None,
        "teeth_description": teeth_type_description(visit.teeth_treated) or None,
        "service_amount": round(service_amount, 2),
        "total_amount": round(service_amount, 2),
        "payments": rows,
        "total_paid": round(sum(p["amount"] for p in rows), 2),
    }


def payment_receipt_data(db: Session, payment: Payment) -> dict:
    """Receipt for a single payment, built from the visit or appointment it settles"""
    if payment.visit:
        data = visit_receipt_data(db, payment.visit)
    elif payment.appointment:
        data = appointment_receipt_data(db, payment.appointment)
    else:
        data = {"receipt_number": f"RCP-P-{payment.id:06d}", **_clinic_block(), **_patient_block(None)}
    data["payment_id"] = payment.id
    data["payment"] = _payment_rows([payment])[0] if payment.status == "paid" else None
    return data


class ReceiptPDFGenerator:
    """Render receipt data as a one-page PDF"""

    def __init__(self, data: dict):
        self.data = data
        self.page_width, self.page_height = A5
        self.margin = 0.5 * inch

        self.brand_color = colors.HexColor("#0ea5e9")
        self.dark_gray = colors.HexColor("#0f172a")
        self.light_gray = colors.HexColor("#f1f5f9")

    def generate(self) -> bytes:
        logger.info(f"📄 Generating receipt PDF {self.data.get('receipt_number')}")

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A5,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=f"Receipt - {self.data.get('receipt_number')}",
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "ReceiptTitle",
            parent=styles["Heading1"],
            fontSize=18,
            textColor=self.brand_color,
            alignment=1,
            spaceAfter=4,
        )
        small_style = ParagraphStyle(
            "ReceiptSmall", parent=styles["Normal"], fontSize=8, textColor=self.dark_gray, alignment=1
        )
        heading_style = ParagraphStyle(
            "ReceiptHeading",
            parent=styles["Heading2"],
            fontSize=11,
            textColor=self.dark_gray,
            spaceBefore=10,
            spaceAfter=4,
        )

        story = [Paragraph(self.data["clinic_name"], title_style)]
        contact = " | ".join(
            v for v in (self.data.get("clinic_address"), self.data.get("clinic_phone"), self.data.get("clinic_email")) if v
        )
        if contact:
            story.append(Paragraph(contact, small_style))
        story.append(Spacer(1, 0.15 * inch))

        story.append(
            self._table(
                [
                    ["Receipt No.", self.data["receipt_number"]],
                    ["Date", f"{self.data['receipt_date']} {self.data['receipt_time']}"],
                    ["Patient", self.data["patient_name"]],
                    ["Contact", self.data.get("patient_phone") or "-"],
                ]
            )
        )

        story.append(Paragraph("Service", heading_style))
        service_rows = [["Service", self.data.get("service_name", "-")]]
        if self.data.get("service_date") or self.data.get("visit_date"):
            service_rows.append(["Date", self.data.get("service_date") or self.data.get("visit_date")])
        if self.data.get("service_time"):
            service_rows.append(["Time", self.data["service_time"]])
        if self.data.get("teeth_treated"):
            service_rows.append(["Teeth", self.data["teeth_treated"]])
        elif self.data.get("teeth_description"):
            service_rows.append(["Teeth", self.data["teeth_description"]])
        service_rows.append(["Amount", f"PHP {self.data.get('total_amount', 0):,.2f}"])
        story.append(self._table(service_rows))

        story.append(Paragraph("Payments", heading_style))
        payment_rows = [["Method", "Reference", "Amount"]]
        for payment in self.data.get("payments", []):
            payment_rows.append([payment["method"].upper(), payment["reference"], f"PHP {payment['amount']:,.2f}"])
        if len(payment_rows) == 1:
            payment_rows.append(["-", "No payments recorded", "-"])
        payment_rows.append(["", "Total paid", f"PHP {self.data.get('total_paid', 0):,.2f}"])

        table = Table(payment_rows, colWidths=[0.9 * inch, 2.0 * inch, 1.2 * inch])
        table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 9),
                    ("FONT", (0, 1), (-1, -1), "Helvetica", 9),
                    ("FONT", (0, -1), (-1, -1), "Helvetica-Bold", 9),
                    ("BACKGROUND", (0, 0), (-1, 0), self.light_gray),
                    ("TEXTCOLOR", (0, 0), (-1, -1), self.dark_gray),
                    ("ALIGN", (2, 0), (2, -1), "RIGHT"),
                    ("LINEABOVE", (0, -1), (-1, -1), 0.5, self.dark_gray),
                ]
            )
        )
        story.append(table)

        refund = self.data.get("refund_request")
        if refund:
            story.append(Paragraph("Refund", heading_style))
            story.append(
                self._table(
                    [
                        ["Status", refund["status"].capitalize()],
                        ["Original", f"PHP {refund['original_amount']:,.2f}"],
                        ["Fee", f"PHP {refund['cancellation_fee']:,.2f}"],
                        ["Refund", f"PHP {refund['refund_amount']:,.2f}"],
                    ]
                )
            )

        story.append(Spacer(1, 0.3 * inch))
        story.append(Paragraph("Thank you for choosing us.", small_style))

        doc.build(story)
        pdf_bytes = buffer.getvalue()
        buffer.close()
        return pdf_bytes

    def _table(self, rows: list[list[str]]) -> Table:
        table = Table(rows, colWidths=[1.2 * inch, 2.9 * inch])
        table.setStyle(
            TableStyle(
                [
                    ("FONT", (0, 0), (0, -1), "Helvetica-Bold", 9),
                    ("FONT", (1, 0), (1, -1), "Helvetica", 9),
                    ("TEXTCOLOR", (0, 0), (-1, -1), self.dark_gray),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
                ]
            )
        )
        return table
