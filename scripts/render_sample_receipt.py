#!/usr/bin/env python3
"""
Render a sample receipt to check fonts and layout.
Usage: python scripts/render_sample_receipt.py [output_dir]
"""

import sys
from datetime import datetime

from bookingbot.config import settings
from bookingbot.services.catalogs import load_catalog
from bookingbot.services.receipt_service import ReceiptGenerator, ReceiptRequest


def main():
    output_dir = sys.argv[1] if len(sys.argv) > 1 else settings.receipt_dir
    catalog = load_catalog(settings.catalog, settings)
    generator = ReceiptGenerator(output_dir, branding=catalog.branding)

    request = ReceiptRequest(
        order_number="884210",
        service_name="Special Building Fund",
        amount="550.00",
        customer_name="Thabo Molefe",
        details=["Quantity: 1"],
        issued_at=datetime(2024, 5, 24),
    )

    print("Generating receipt...")
    try:
        path = generator.generate(request)
    except Exception as e:
        print(f"❌ Failed: {e}")
        sys.exit(1)
    print(f"✅ Success! Receipt saved to: {path}")


if __name__ == "__main__":
    main()
