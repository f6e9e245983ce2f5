"""CLI commands for tier and quota administration."""
import json
import click
from tierquota.auth import hash_password
from tierquota.config import settings
from tierquota.database import Base, SessionLocal, engine
from tierquota.errors import TierQuotaError
from tierquota.models import User
from tierquota import registry
from tierquota.quota import QuotaManager
from tierquota.seed import seed_defaults


@click.group()
def cli():
    """Manage tiers, quotas and admin users."""


@cli.command("create-admin")
@click.option('--email', required=True, help='Admin email address')
@click.option('--password', required=True, help='Admin password')
def create_admin(email: str, password: str):
    """Create an admin user for initial setup."""
    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            click.echo(f"Error: User with email {email} already exists")
            return

        user = User(
            email=email,
            password_hash=hash_password(password),
            user_tier="admin",
            is_premium=True,
            is_admin=True,
        )
        db.add(user)
        db.commit()
        click.echo(f"Admin user created: {email}")
    except Exception as e:
        click.echo(f"Error: {e}")
        db.rollback()
    finally:
        db.close()


@cli.command()
def seed():
    """Create tables and fill in default tiers, models, access and quotas."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        created = seed_defaults(db)
    finally:
        db.close()
    click.echo(
        f"Seeded {created['tiers']} tiers, {created['models']} models, "
        f"{created['access']} access rules, {created['quotas']} quota limits"
    )


@cli.command("set-tier")
@click.option('--email', required=True, help='User email address')
@click.option('--tier', required=True, help='Tier name')
def set_tier(email: str, tier: str):
    """Move a user to another tier."""
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            click.echo(f"Error: No user with email {email}")
            return
        user = registry.set_user_tier(db, user.id, tier)
        click.echo(f"{email} is now on tier {user.user_tier} (premium={user.is_premium})")
    except TierQuotaError as e:
        click.echo(f"Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option('--email', required=True, help='User email address')
def status(email: str):
    """Print a user's quota status for every accessible model as JSON."""
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            click.echo(f"Error: No user with email {email}")
            return
        manager = QuotaManager(db)
        tier = manager.resolve_user_tier(user.id)
        models = manager.status_for_all_accessible_models(user.id)
        click.echo(json.dumps({
            "tier": tier.model_dump() if tier else None,
            "timezone": settings.quota_timezone,
            "models": {k: v.model_dump(mode="json") for k, v in models.items()},
        }, indent=2))
    finally:
        db.close()


if __name__ == "__main__":
    cli()
