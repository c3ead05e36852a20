"""Non-interactive script to seed a tenant with operators and a routing config.

Usage:
    python scripts/seed_operators.py \
        --tenant-name "Acme Support" \
        --subdomain "acme" \
        --operators 3 \
        --max-concurrent 2 \
        --strategy least_busy
"""

import asyncio
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from handoff.core.errors import ValidationError
from handoff.domain.models.escalation import OperatorStatus, RoutingStrategy
from handoff.persistence.database import AsyncSessionLocal
from handoff.persistence.models.operator_availability import OperatorAvailability
from handoff.persistence.models.tenant import Tenant, User
from handoff.persistence.repositories.tenant_routing_config_repository import (
    TenantRoutingConfigRepository,
)


async def seed_operators(
    tenant_name: str,
    subdomain: str,
    operators: int,
    max_concurrent: int,
    strategy: str,
    online: bool = True,
):
    """Create (or reuse) a tenant, add operators with availability rows, and set routing."""
    print("=" * 70)
    print("SEEDING OPERATORS")
    print("=" * 70)
    print()

    try:
        routing_strategy = RoutingStrategy.parse(strategy)
    except ValidationError as e:
        print(f"❌ {e}")
        return None

    if operators < 1 or max_concurrent < 1:
        print("❌ --operators and --max-concurrent must be at least 1.")
        return None

    subdomain = subdomain.lower().strip()

    async with AsyncSessionLocal() as db:
        try:
            result = await db.execute(select(Tenant).where(Tenant.subdomain == subdomain))
            tenant = result.scalar_one_or_none()
            if tenant is None:
                tenant = Tenant(name=tenant_name, subdomain=subdomain, is_active=True)
                db.add(tenant)
                await db.flush()
                print(f"✓ Created tenant: {tenant.name} (ID: {tenant.id})")
            else:
                print(f"✓ Using existing tenant: {tenant.name} (ID: {tenant.id})")

            status = OperatorStatus.ONLINE if online else OperatorStatus.OFFLINE
            created = []
            for n in range(1, operators + 1):
                email = f"operator{n}@{subdomain}.example.com"
                result = await db.execute(select(User).where(User.email == email))
                user = result.scalar_one_or_none()
                if user is None:
                    user = User(tenant_id=tenant.id, email=email, name=f"Operator {n}", role="operator")
                    db.add(user)
                    await db.flush()

                result = await db.execute(
                    select(OperatorAvailability).where(OperatorAvailability.user_id == user.id)
                )
                availability = result.scalar_one_or_none()
                if availability is None:
                    availability = OperatorAvailability(tenant_id=tenant.id, user_id=user.id)
                    db.add(availability)
                availability.status = status.value
                availability.max_concurrent = max_concurrent
                availability.current_load = 0
                created.append(user)

            config_repo = TenantRoutingConfigRepository(db)
            await config_repo.upsert(tenant.id, strategy=routing_strategy.value)
            await db.commit()

            print()
            print(f"Operators ({status.value}, max {max_concurrent} each):")
            for user in created:
                print(f"  {user.id}: {user.name} <{user.email}>")
            print(f"Routing strategy: {routing_strategy.value}")
            print()
            print("Try it:")
            print(f"   curl -H 'X-Tenant-Id: {tenant.id}' localhost:8000/api/v1/operators/available")
            print()

            return tenant

        except Exception as e:
            print(f"\n❌ Error during seeding: {e}")
            await db.rollback()
            raise


def main():
    """Parse arguments and run seeding."""
    parser = argparse.ArgumentParser(description="Seed a tenant with operators and routing config")
    parser.add_argument("--tenant-name", default="Demo Support", help="Tenant display name")
    parser.add_argument("--subdomain", default="demo", help="Tenant subdomain (created if missing)")
    parser.add_argument("--operators", type=int, default=3, help="Number of operators")
    parser.add_argument("--max-concurrent", type=int, default=3, help="Concurrent conversations per operator")
    parser.add_argument(
        "--strategy",
        default=RoutingStrategy.LEAST_BUSY.value,
        help=f"Routing strategy ({', '.join(s.value for s in RoutingStrategy)})",
    )
    parser.add_argument("--offline", action="store_true", help="Seed operators as offline")
    args = parser.parse_args()

    tenant = asyncio.run(
        seed_operators(
            tenant_name=args.tenant_name,
            subdomain=args.subdomain,
            operators=args.operators,
            max_concurrent=args.max_concurrent,
            strategy=args.strategy,
            online=not args.offline,
        )
    )
    sys.exit(0 if tenant else 1)


if __name__ == "__main__":
    main()
