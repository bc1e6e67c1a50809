#!/usr/bin/env python3
"""
Initial Data Loading Script for the CCM Instruction Store

Creates the tables and loads a development lease hierarchy:
- Customers, master leases, riders and amendments
- Car placements on riders
- Sample CCM instructions with sealing/lining sections (optional)

Usage:
    python load_initial_data.py [--with-samples] [--config config.yaml]
"""

import sys
import argparse
import logging
from datetime import date, timedelta
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent))

from config_manager import get_config, configure_logging
from ccm.connection import DatabaseSettings, init_db, close_db
from ccm.errors import DuplicateInstructionError
from ccm.hierarchy import ScopeRef, SqlHierarchyDirectory
from ccm.models import (
    Customer, MasterLease, LeaseRider, LeaseAmendment, RiderCar, ScopeLevel
)
from ccm.repositories import CCMInstructionRepository

logger = logging.getLogger(__name__)


SAMPLE_HIERARCHY = [
    {
        "customer_code": "ACME",
        "customer_name": "Acme Chemical Co",
        "leases": [
            {
                "lease_id": "ML-2024-001",
                "lease_name": "Acme Tank Car Master Lease",
                "riders": [
                    {
                        "rider_id": "R-001",
                        "rider_name": "Acme Food Grade Fleet",
                        "cars": ["ACMX100001", "ACMX100002"],
                        "amendments": [
                            {"amendment_id": "AMD-001", "change_summary": "Kosher wash added", "days_ago": 90},
                        ],
                    },
                    {
                        "rider_id": "R-002",
                        "rider_name": None,
                        "cars": ["ACMX200001"],
                        "amendments": [],
                    },
                ],
                "lease_amendments": [
                    {"amendment_id": "AMD-L01", "change_summary": None, "days_ago": 30},
                ],
            },
        ],
    },
    {
        "customer_code": "GRNR",
        "customer_name": "Granary Foods",
        "leases": [
            {
                "lease_id": "ML-2023-114",
                "lease_name": None,
                "status": "Expired",
                "riders": [],
                "lease_amendments": [],
            },
        ],
    },
]


def load_hierarchy(session):
    """Load the sample lease hierarchy."""
    created = 0
    today = date.today()

    for customer_data in SAMPLE_HIERARCHY:
        customer = session.query(Customer).filter_by(customer_code=customer_data["customer_code"]).first()
        if customer:
            logger.info(f"Customer already exists: {customer_data['customer_code']}")
            continue

        customer = Customer(
            customer_code=customer_data["customer_code"],
            customer_name=customer_data["customer_name"],
            is_active=True
        )
        session.add(customer)
        session.flush()
        created += 1
        logger.info(f"Created customer: {customer.customer_name}")

        for lease_data in customer_data["leases"]:
            lease = MasterLease(
                customer_id=customer.id,
                lease_id=lease_data["lease_id"],
                lease_name=lease_data["lease_name"],
                status=lease_data.get("status", "Active")
            )
            session.add(lease)
            session.flush()
            created += 1

            for amendment_data in lease_data["lease_amendments"]:
                session.add(LeaseAmendment(
                    master_lease_id=lease.id,
                    amendment_id=amendment_data["amendment_id"],
                    change_summary=amendment_data["change_summary"],
                    effective_date=today - timedelta(days=amendment_data["days_ago"])
                ))
                created += 1

            for rider_data in lease_data["riders"]:
                rider = LeaseRider(
                    master_lease_id=lease.id,
                    rider_id=rider_data["rider_id"],
                    rider_name=rider_data["rider_name"],
                    status="Active"
                )
                session.add(rider)
                session.flush()
                created += 1

                for car_number in rider_data["cars"]:
                    session.add(RiderCar(rider_id=rider.id, car_number=car_number, is_active=True))
                    created += 1

                for amendment_data in rider_data["amendments"]:
                    session.add(LeaseAmendment(
                        rider_id=rider.id,
                        master_lease_id=lease.id,
                        amendment_id=amendment_data["amendment_id"],
                        change_summary=amendment_data["change_summary"],
                        effective_date=today - timedelta(days=amendment_data["days_ago"])
                    ))
                    created += 1

    session.flush()
    return created


def load_sample_instructions(session):
    """Load sample CCM instructions at each level of the Acme hierarchy."""
    customer = session.query(Customer).filter_by(customer_code="ACME").first()
    lease = session.query(MasterLease).filter_by(lease_id="ML-2024-001").first()
    rider = session.query(LeaseRider).filter_by(rider_id="R-001").first()
    amendment = session.query(LeaseAmendment).filter_by(amendment_id="AMD-001").first()
    if not all((customer, lease, rider, amendment)):
        logger.warning("Sample hierarchy missing, skipping sample instructions")
        return 0

    repo = CCMInstructionRepository(session, SqlHierarchyDirectory(session))
    samples = [
        (ScopeRef(ScopeLevel.CUSTOMER, customer.id), {
            "food_grade": True,
            "kosher_wash": False,
            "primary_contact_name": "Dana Reyes",
            "primary_contact_email": "dana.reyes@acme.example",
            "nitrogen_applied": True,
            "nitrogen_psi": "15",
        }, [
            {"commodity": "Sulfuric Acid", "gasket_sealing_material": "PTFE", "vsp_ride_tight": True},
        ], []),
        (ScopeRef(ScopeLevel.MASTER_LEASE, lease.id), {
            "kosher_wash": True,
        }, [], [
            {"commodity": "Corn Syrup", "lining_required": True, "lining_type": "Epoxy phenolic"},
        ]),
        (ScopeRef(ScopeLevel.RIDER, rider.id), {
            "dispo_contact_name": "Lee Park",
            "additional_notes": "Release only after wash certificate is on file",
        }, [
            {"commodity": "Sulfuric Acid", "gasket_sealing_material": "Viton", "alternate_material": "EPDM"},
        ], []),
        (ScopeRef(ScopeLevel.AMENDMENT, amendment.id), {
            "kosher_wipe": True,
        }, [
            {"commodity": "Sulfuric Acid", "inherit_from_parent": True},
        ], []),
    ]

    created = 0
    for scope, fields, sealing, lining in samples:
        try:
            instruction = repo.create(scope, fields)
        except DuplicateInstructionError:
            logger.info(f"CCM instruction already exists for {scope.level.value} {scope.id}")
            continue
        for section in sealing:
            repo.add_sealing_section(instruction.id, section)
        for section in lining:
            repo.add_lining_section(instruction.id, section)
        created += 1

    return created


def main():
    parser = argparse.ArgumentParser(description="Load initial data into the CCM database")
    parser.add_argument("--with-samples", action="store_true", help="Include sample CCM instructions for development")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    args = parser.parse_args()

    config = get_config(args.config)
    configure_logging(config.logging)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    logger.info("=" * 50)
    logger.info("CCM Initial Data Loading")
    logger.info("=" * 50)

    try:
        db = init_db(DatabaseSettings.from_config(config.database))
        db.create_tables()

        with db.session_scope() as session:
            logger.info("[1/2] Loading lease hierarchy...")
            rows_created = load_hierarchy(session)
            logger.info(f"Hierarchy rows created: {rows_created}")

            if args.with_samples:
                logger.info("[2/2] Loading sample CCM instructions...")
                samples_created = load_sample_instructions(session)
                logger.info(f"Sample instructions created: {samples_created}")
            else:
                logger.info("[2/2] Skipping sample instructions (use --with-samples to include)")

        logger.info("=" * 50)
        logger.info("Initial data loading complete!")
        logger.info("=" * 50)
    except Exception as e:
        logger.error(f"Error loading initial data: {e}")
        raise
    finally:
        close_db()


if __name__ == "__main__":
    main()
