#!/usr/bin/env python
"""Smoke test for the Sankhya connector.

This script checks that the connector can:
1. Log in with the configured service credentials
2. Load a page of products
3. Look up price and stock for the first product

Usage:
    # With real Sankhya credentials (environment variables or .env):
    export SANKHYA_TOKEN=... SANKHYA_APPKEY=... SANKHYA_USERNAME=... SANKHYA_PASSWORD=...
    python scripts/check_sankhya_connection.py --search parafuso

    # Dry run (no API calls, just verify configuration):
    python scripts/check_sankhya_connection.py --dry-run
"""

import argparse
import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from connectors.sankhya import SankhyaApiError, SankhyaConnector
from core.config import SankhyaSettings, load_settings


def check_configuration(settings: SankhyaSettings) -> bool:
    print("=" * 60)
    print("Sankhya Configuration")
    print("=" * 60)
    print(f"  Base URL:    {settings.base_url}")
    print(f"  Price table: {settings.price_table}")
    print(f"  Cache:       {'redis' if settings.redis_url else 'memory'}")

    missing = settings.validate()
    if missing:
        print(f"\n✗ Missing variables: {', '.join(missing)}")
        return False
    print("\n✓ Credentials configured")
    return True


async def check_live(settings: SankhyaSettings, search: str, page_size: int) -> bool:
    print("\n" + "=" * 60)
    print("Sankhya Live Test")
    print("=" * 60)

    connector = SankhyaConnector(settings)
    await connector.connect()

    try:
        if not await connector.test_connection():
            print("✗ Login failed")
            return False
        print("✓ Login succeeded")

        page = await connector.list_products(page=1, page_size=page_size, name_filter=search)
        print(f"✓ Products: {len(page.products)} of {page.total} ({page.total_pages} pages)")
        for product in page.products:
            print(f"    {product.get('CODPROD', '?'):>8}  {product.get('DESCRPROD', '')}")

        if page.products:
            code = page.products[0]["_id"]
            price = await connector.get_product_price(code)
            stock = await connector.get_product_stock(code)
            print(f"✓ Product {code}: price {price:.2f}, stock {stock.total_stock:g} in {stock.total} locations")

        return True

    except SankhyaApiError as e:
        print(f"\n✗ {type(e).__name__}: {e}")
        return False
    finally:
        await connector.disconnect()


def main():
    parser = argparse.ArgumentParser(description="Check the Sankhya connection")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only check configuration, don't make API calls"
    )
    parser.add_argument(
        "--search",
        default="",
        help="Description filter for the product page"
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=5,
        help="Products to list (default: 5)"
    )

    args = parser.parse_args()
    settings = load_settings()

    configured = check_configuration(settings)
    if args.dry_run:
        sys.exit(0 if configured else 1)

    if not configured:
        print("\nSet the variables above (or a .env file) or run with --dry-run.")
        sys.exit(1)

    success = asyncio.run(check_live(settings, args.search, args.page_size))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
