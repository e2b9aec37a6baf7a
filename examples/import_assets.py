#!/usr/bin/env python3
"""Example: Import an asset feed into PostgreSQL and report warranty expiries.

Usage:
    python examples/import_assets.py <tenant_id> <feed.csv|feed.xlsx> [source]

Connection settings are read from ASSETKIT_DB_URL (or DATABASE_URL) or the
individual ASSETKIT_DB_* variables, optionally via a .env file.
"""

import json
import sys
from uuid import UUID

from assetkit import AssetService
from assetkit.config import configure_logging, load_settings
from assetkit.errors import AssetKitError
from assetkit.ingest import PostgresClient


def import_feed(tenant_id: UUID, file_path: str, source: str = "csv"):
    """Preview a feed, import it with the suggested mapping, then report."""
    settings = load_settings()
    configure_logging(settings)

    db = PostgresClient(settings=settings)
    db.ensure_schema()
    service = AssetService(db, settings=settings, debug=True)

    try:
        preview = service.preview_file(file_path)
        print(f"📄 {preview.total_rows} rows, headers: {', '.join(preview.headers)}")
        print("🔗 Suggested mapping:")
        for header, field in preview.suggested_mapping.items():
            print(f"  {header} -> {field}")

        data = service.parser.parse_file(file_path)
        result = service.execute_import(
            tenant_id,
            source,
            data.rows,
            field_mapping=preview.suggested_mapping
        )
        print(f"\n✅ Import {result.status}")
        print(json.dumps(result.to_dict(), indent=2))

        expiring = service.get_warranty_expiring(tenant_id, within_days=30)
        print(f"\n⏰ {len(expiring)} warranties expire in the next 30 days")
        for asset in expiring:
            print(f"  {asset['tag'] or asset['serial']}: {asset['warranty_days_remaining']} days")

    except AssetKitError as e:
        print(f"❌ {e.code}: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    import_feed(UUID(sys.argv[1]), sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else "csv")
