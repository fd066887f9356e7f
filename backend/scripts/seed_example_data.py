"""
Seed Example Data for SiteLedger

This script seeds the database with:
1. One user for each role
2. An example construction project
3. A material catalogue covering every category
4. A BOM plan for the example project

It prints a bearer token per user so the API can be tried right away.

Run from backend/ with: python scripts/seed_example_data.py
"""
import sys
from pathlib import Path

# Make the app package importable when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date
from decimal import Decimal
from typing import Dict

from sqlalchemy.orm import Session

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models import BOMEntry, Material, MaterialCategory, Project, Role, User
from app.services import bom_tracker


EXAMPLE_USERS = [
    {"name": "Dewi Director", "email": "director@siteledger.local", "role": Role.DIRECTOR, "position": "Director"},
    {"name": "Mark Manager", "email": "manager@siteledger.local", "role": Role.MANAGER, "position": "Project Manager"},
    {"name": "Putri Purchasing", "email": "purchasing@siteledger.local", "role": Role.PURCHASING, "position": "Purchasing Officer"},
    {"name": "Candra Cost", "email": "costcontrol@siteledger.local", "role": Role.COST_CONTROL, "position": "Cost Controller"},
    {"name": "Gilang GM", "email": "gm@siteledger.local", "role": Role.GENERAL_MANAGER, "position": "General Manager"},
    {"name": "Fajar Field", "email": "field@siteledger.local", "role": Role.FIELD_TEAM, "position": "Site Supervisor"},
]

EXAMPLE_MATERIALS = [
    # code, name, category, unit, unit_price, stock, min_stock, supplier
    ("MAT-STR-001", "Portland Cement 50kg", MaterialCategory.STRUCTURAL, "sack", "75.00", "400", "50", "PT Semen Nusantara"),
    ("MAT-STR-002", "Rebar 12mm x 12m", MaterialCategory.STRUCTURAL, "pcs", "110.00", "250", "40", "CV Baja Prima"),
    ("MAT-STR-003", "Ready-mix Concrete K-300", MaterialCategory.STRUCTURAL, "m3", "950.00", "0", "0", "PT Beton Jaya"),
    ("MAT-ELC-001", "NYM Cable 3x2.5mm", MaterialCategory.ELECTRICAL, "m", "2.50", "1500", "200", "CV Kabel Terang"),
    ("MAT-ELC-002", "MCB 16A", MaterialCategory.ELECTRICAL, "pcs", "45.00", "60", "10", "CV Kabel Terang"),
    ("MAT-PLB-001", "PVC Pipe 3in x 4m", MaterialCategory.PLUMBING, "pcs", "12.00", "120", "20", "PT Pipa Sentosa"),
    ("MAT-PLB-002", "Gate Valve 2in", MaterialCategory.PLUMBING, "pcs", "38.00", "15", "5", "PT Pipa Sentosa"),
    ("MAT-FIN-001", "Ceramic Tile 40x40", MaterialCategory.FINISHING, "m2", "8.50", "600", "100", "UD Keramik Indah"),
    ("MAT-FIN-002", "Wall Paint 20L", MaterialCategory.FINISHING, "can", "64.00", "18", "20", "UD Warna Cerah"),
    ("MAT-OTH-001", "Safety Helmet", MaterialCategory.OTHER, "pcs", "9.00", "40", "10", None),
]

EXAMPLE_BOM = [
    # material code, planned qty, phase
    ("MAT-STR-001", "300", "foundation"),
    ("MAT-STR-002", "180", "foundation"),
    ("MAT-ELC-001", "900", "utilities"),
    ("MAT-PLB-001", "60", "utilities"),
    ("MAT-FIN-001", "450", "interior"),
]


def seed_users(db: Session) -> Dict[Role, User]:
    print("\n👷 Seeding users...")
    users = {}
    for data in EXAMPLE_USERS:
        user = db.query(User).filter(User.email == data["email"]).first()
        if user:
            print(f"  ⏭️  Skipped {data['email']} (already exists)")
        else:
            user = User(**data)
            db.add(user)
            db.commit()
            db.refresh(user)
            print(f"  ✅ Created {user.name} ({user.role.value})")
        users[user.role] = user
    return users


def seed_project(db: Session) -> Project:
    print("\n🏗️  Seeding example project...")
    name = "Warehouse Extension - Block B"
    project = db.query(Project).filter(Project.name == name).first()
    if project:
        print(f"  ⏭️  Skipped {name} (already exists)")
        return project

    project = Project(
        name=name,
        description="Two-storey steel frame warehouse extension",
        customer="PT Logistik Maju",
        city="Bekasi",
        estimated_cost=Decimal("420000.00"),
        start_date=date.today(),
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    print(f"  ✅ Created project {project.id}: {project.name}")
    return project


def seed_materials(db: Session) -> int:
    print("\n🧱 Seeding material catalogue...")
    created = 0
    for code, name, category, unit, price, stock, min_stock, supplier in EXAMPLE_MATERIALS:
        if db.query(Material).filter(Material.code == code).first():
            print(f"  ⏭️  Skipped {code} (already exists)")
            continue
        db.add(Material(
            code=code,
            name=name,
            category=category,
            unit=unit,
            unit_price=Decimal(price),
            stock=Decimal(stock),
            min_stock=Decimal(min_stock),
            supplier=supplier,
        ))
        created += 1
        print(f"  ✅ Created {code}: {name}")
    db.commit()
    return created


def seed_bom(db: Session, project: Project) -> int:
    print("\n📋 Seeding BOM plan...")
    created = 0
    for code, planned_qty, phase in EXAMPLE_BOM:
        material = db.query(Material).filter(Material.code == code).first()
        exists = db.query(BOMEntry).filter(
            BOMEntry.project_id == project.id,
            BOMEntry.material_id == material.id,
        ).first()
        if exists:
            print(f"  ⏭️  Skipped {code} (already planned)")
            continue
        bom_tracker.add_entry(db, project.id, material.id, Decimal(planned_qty), phase=phase)
        created += 1
        print(f"  ✅ Planned {planned_qty} x {code} for {phase}")
    db.commit()
    return created


def main():
    """Main seed function"""
    print("=" * 60)
    print("SiteLedger Example Data Seeder")
    print("=" * 60)

    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()

    try:
        users = seed_users(db)
        project = seed_project(db)
        materials_created = seed_materials(db)
        bom_created = seed_bom(db, project)

        print("\n" + "=" * 60)
        print("✅ Seeding complete!")
        print("=" * 60)
        print(f"\nSummary:")
        print(f"  👷 Users: {len(users)}")
        print(f"  🏗️  Project: {project.id} ({project.name})")
        print(f"  🧱 Materials: {materials_created} created")
        print(f"  📋 BOM entries: {bom_created} created")
        print(f"\n🔑 Bearer tokens:")
        for role, user in users.items():
            print(f"  {role.value:<16} {create_access_token(user.id, role.value)}")

    except Exception as e:
        print(f"\n❌ Error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
