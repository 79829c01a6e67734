from care_billing.models.client import Client
from care_billing.models.rate import ClientRateSchedule, ServiceRate, ClientRateAssignment
from care_billing.models.booking import Booking
from care_billing.models.expense import ExpenseClaim
from care_billing.models.extra_time import ExtraTimeRecord
from care_billing.models.bank_holiday import BankHoliday
from care_billing.models.invoice import ClientInvoice, InvoiceLineItem, InvoiceStatus
from care_billing.models.payment import PaymentRecord

__all__ = [
    "Client",
    "ClientRateSchedule",
    "ServiceRate",
    "ClientRateAssignment",
    "Booking",
    "ExpenseClaim",
    "ExtraTimeRecord",
    "BankHoliday",
    "ClientInvoice",
    "InvoiceLineItem",
    "InvoiceStatus",
    "PaymentRecord",
]
