"""
NAMASTE terminology seeding script.

Creates the database tables and loads concepts and curated mappings from
CSV files (the bundled seed files by default).

Usage:
    python scripts/seed_database.py [DATA_DIR]
"""

import asyncio
import sys
from pathlib import Path

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from namaste_fhir.config import settings
from namaste_fhir.db.repositories import SqlConceptRepository, SqlMappingStore
from namaste_fhir.db.session import AsyncSessionLocal, init_db
from namaste_fhir.services.concept_loader import DATA_DIR, ConceptLoader


async def main(data_dir: Path) -> int:
    """Main seeding function."""
    print("🚀 Starting NAMASTE terminology seeding...")
    print(f"📊 Database: {settings.database_url}")

    await init_db()
    print("✅ Database initialized")

    if not data_dir.is_dir():
        print(f"❌ Data directory not found: {data_dir}")
        return 1

    print(f"📁 Loading seed files from: {data_dir}")

    mappings = SqlMappingStore(AsyncSessionLocal)
    loader = ConceptLoader(SqlConceptRepository(AsyncSessionLocal), mappings)

    try:
        result = await loader.seed_defaults(data_dir)
    except (OSError, ValueError) as e:
        print(f"❌ Error loading seed files: {e}")
        return 1

    for name in ("namaste", "icd11"):
        stats = result[name]
        print(f"✅ {name}: loaded {stats['loaded']} concepts")
        if stats["skipped"] or stats["rejected"]:
            print(f"⚠️  {name}: skipped {stats['skipped']} existing, rejected {stats['rejected']} invalid")

    print(f"✅ Upserted {result['mappings']['upserted']} mappings")

    stats = await mappings.statistics()
    print("\n📈 Mapping Statistics:")
    print("-" * 40)
    print(f"Total Mappings: {stats['total_mappings']}")
    for system, count in stats["source_system_distribution"].items():
        print(f"  {system}: {count}")
    print(f"Average confidence: {stats['average_confidence']}")

    print("\n🎉 Seeding completed successfully!")
    print("\nNext steps:")
    print("1. Start the service: uvicorn namaste_fhir.main:app --reload --port 8000")
    print("2. View documentation: http://localhost:8000/docs")
    return 0


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else DATA_DIR
    sys.exit(asyncio.run(main(target)))
