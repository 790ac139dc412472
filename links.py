import re
import urllib.parse
from io import BytesIO

import qrcode

from config import DEFAULT_BUSINESS_NAME

UPI_NOTE = "PaymentToMomai"
# Characters encodeURIComponent leaves alone
_URI_SAFE = "!*'()"


def _indian_grouping(digits):
    # 1234567 -> 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(val):
    val = round(float(val), 2)
    sign = "-" if val < 0 else ""
    whole, _, frac = f"{abs(val):.2f}".partition(".")
    frac = frac.rstrip("0")
    text = _indian_grouping(whole) + (f".{frac}" if frac else "")
    return f"₹{sign}{text}"


def plain_amount(amount):
    amount = round(float(amount), 2)
    if amount.is_integer():
        return str(int(amount))
    return f"{amount:.2f}".rstrip("0")


def upi_link(upi_id, business_name, amount):
    if not upi_id:
        return None
    biz = urllib.parse.quote(business_name or DEFAULT_BUSINESS_NAME, safe=_URI_SAFE)
    return f"upi://pay?pa={upi_id}&pn={biz}&am={plain_amount(amount)}&cu=INR&tn={UPI_NOTE}"


def reminder_message(customer, business_name, upi_id=""):
    link = upi_link(upi_id, business_name, customer["due"])
    message = (
        f"Namaste {customer['name']}, this is a reminder regarding your pending balance of "
        f"{format_currency(customer['due'])} at {business_name or DEFAULT_BUSINESS_NAME}."
    )
    if link:
        message += f"\n\nYou can pay directly using this link:\n{link}\n\nThank you!"
    else:
        message += "\n\nPlease clear it at your earliest convenience. Thank you!"
    return message


def whatsapp_link(customer, business_name, upi_id=""):
    """
    wa.me deep link with the due reminder prefilled.
    Deactivated customers can't be messaged, so they get None.
    """
    if not customer.get("isActive", True):
        return None
    encoded_msg = urllib.parse.quote(reminder_message(customer, business_name, upi_id), safe=_URI_SAFE)
    clean_phone = re.sub(r"[^\d+]", "", customer["phone"]).replace("+", "", 1)
    return f"https://wa.me/{clean_phone}?text={encoded_msg}"


def qr_png(data, box_size=10, border=4):
    img = qrcode.make(data, box_size=box_size, border=border)
    buf = BytesIO()
    img.save(buf)
    return buf.getvalue()


def payment_qr_png(upi_id, business_name, amount):
    link = upi_link(upi_id, business_name, amount)
    if not link:
        return None
    return qr_png(link)
