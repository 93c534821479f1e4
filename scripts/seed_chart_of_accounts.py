"""
Database seeding script for the base chart of accounts.

Creates the cash and revenue accounts the revenue pipeline books against,
plus the cost and expense groups the DRE reads.
Run this script after database is set up but before the first webhook.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from finance_backend.app.db.session import AsyncSessionLocal, engine, Base
from finance_backend.app.models.account import Account
from finance_backend.app.models.ledger_enums import AccountType
from sqlalchemy import select

CHART_OF_ACCOUNTS = [
    ("1", "ATIVO", AccountType.ASSET),
    ("1.1", "ATIVO CIRCULANTE", AccountType.ASSET),
    ("1.1.1", "DISPONÍVEL", AccountType.ASSET),
    ("1.1.1.1", "CAIXA", AccountType.ASSET),
    ("1.1.1.2", "BANCOS CONTA MOVIMENTO", AccountType.ASSET),
    ("3", "CUSTOS", AccountType.COST),
    ("3.1", "CUSTOS DOS SERVIÇOS", AccountType.COST),
    ("3.1.1", "CUSTOS DIRETOS", AccountType.COST),
    ("3.1.1.1", "PRODUTOS UTILIZADOS", AccountType.COST),
    ("4", "RECEITAS", AccountType.REVENUE),
    ("4.1", "RECEITAS OPERACIONAIS", AccountType.REVENUE),
    ("4.1.1", "RECEITA DE SERVIÇOS", AccountType.REVENUE),
    ("4.1.1.1", "CORTES", AccountType.REVENUE),
    ("4.1.1.2", "BARBAS", AccountType.REVENUE),
    ("5", "DESPESAS", AccountType.EXPENSE),
    ("5.1", "DESPESAS OPERACIONAIS", AccountType.EXPENSE),
    ("5.1.1", "DESPESAS COM PESSOAL", AccountType.EXPENSE),
    ("5.1.1.1", "SALÁRIOS", AccountType.EXPENSE),
]


async def seed_chart_of_accounts():
    """
    Seed the chart of accounts.

    Existing codes are left untouched, so the script can be re-run.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting chart of accounts seeding...")

        result = await db.execute(select(Account.code))
        existing = set(result.scalars().all())

        created = 0
        for code, name, account_type in CHART_OF_ACCOUNTS:
            if code in existing:
                continue
            db.add(Account(
                code=code,
                name=name,
                account_type=account_type,
                level=code.count(".") + 1,
                is_active=True,
            ))
            created += 1
            print(f"✅ Created account {code} {name}")

        await db.commit()

        if created:
            print(f"\n🎉 Seeded {created} account(s)")
        else:
            print("ℹ️  Chart of accounts already seeded, nothing to do")


if __name__ == "__main__":
    asyncio.run(seed_chart_of_accounts())
