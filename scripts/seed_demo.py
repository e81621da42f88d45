#!/usr/bin/env python3
"""Seed a demo tenant, optionally with SIIGO credentials from SIIGO_USERNAME / SIIGO_ACCESS_KEY."""
import os
import secrets
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from ledgerboard.crypto import encrypt
from ledgerboard.database import SessionLocal, init_db
from ledgerboard.models import Company
from ledgerboard.tenancy import build_subdomain_url


def seed():
    init_db()
    db = SessionLocal()
    c = db.query(Company).filter(Company.subdomain == "demo").first()
    if not c:
        c = Company(name="Demo Company", subdomain="demo", api_key=secrets.token_hex(32))
        db.add(c)
        db.commit()
        db.refresh(c)
        print(f"Created company: {c.id}")
    else:
        if not c.api_key:
            c.api_key = secrets.token_hex(32)
            db.commit()
        print(f"Using company: {c.id}")
    # API key printed only for local/demo; never log or expose in production
    print(f"API Key: {c.api_key}")

    username = os.getenv("SIIGO_USERNAME")
    access_key = os.getenv("SIIGO_ACCESS_KEY")
    if username and access_key:
        c.siigo_username = username
        c.siigo_access_key = encrypt(access_key)
        c.siigo_partner_id = os.getenv("SIIGO_PARTNER_ID") or None
        db.commit()
        print("Stored SIIGO credentials (encrypted).")
    else:
        print("No SIIGO credentials given; dashboards will serve empty data.")

    print(f"Dashboard: {build_subdomain_url(c.subdomain, '/api/overview')}?companyId={c.id}")
    db.close()


if __name__ == "__main__":
    seed()
