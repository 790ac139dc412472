import urllib.parse

import pytest

from links import (
    format_currency,
    payment_qr_png,
    plain_amount,
    qr_png,
    reminder_message,
    upi_link,
    whatsapp_link,
)

CUSTOMER = {"id": "c1", "name": "Ramesh", "phone": "+91 98765-43210", "due": 1250.0, "isActive": True}


@pytest.mark.parametrize("value, expected", [
    (0, "₹0"),
    (300, "₹300"),
    (1234.5, "₹1,234.5"),
    (1234567, "₹12,34,567"),
    (100000.25, "₹1,00,000.25"),
    (-450, "₹-450"),
])
def test_format_currency_uses_indian_grouping(value, expected):
    assert format_currency(value) == expected


def test_plain_amount():
    assert plain_amount(300.0) == "300"
    assert plain_amount(300.5) == "300.5"
    assert plain_amount(0.1 + 0.2) == "0.3"


def test_upi_link():
    link = upi_link("7046550870@ybl", "Momai Cattle Feed", 300)
    assert link == "upi://pay?pa=7046550870@ybl&pn=Momai%20Cattle%20Feed&am=300&cu=INR&tn=PaymentToMomai"
    assert upi_link("", "Momai", 300) is None


def test_reminder_with_and_without_upi():
    with_upi = reminder_message(CUSTOMER, "Momai Cattle Feed", "shop@ybl")
    assert "pending balance of ₹1,250 at Momai Cattle Feed." in with_upi
    assert "upi://pay?pa=shop@ybl" in with_upi

    without = reminder_message(CUSTOMER, "Momai Cattle Feed")
    assert "Please clear it at your earliest convenience" in without
    assert "upi://" not in without


def test_whatsapp_link():
    link = whatsapp_link(CUSTOMER, "Momai Cattle Feed", "shop@ybl")
    assert link.startswith("https://wa.me/919876543210?text=")

    text = urllib.parse.unquote(link.split("?text=", 1)[1])
    assert text.startswith("Namaste Ramesh,")
    assert "\n\nYou can pay directly" in text


def test_whatsapp_blocked_for_inactive_customer():
    assert whatsapp_link(dict(CUSTOMER, isActive=False), "Momai") is None


def test_qr_png():
    assert qr_png("upi://pay?pa=shop@ybl").startswith(b"\x89PNG")
    assert payment_qr_png("shop@ybl", "Momai", 100).startswith(b"\x89PNG")
    assert payment_qr_png("", "Momai", 100) is None
