"""CLI tools for MiniCRM administration.

    python -m crm.cli seed-plans
    python -m crm.cli create-platform-user --email owner@example.com --role saas_owner
"""

import asyncio

import click
from sqlmodel import select

from crm.core.database import async_session_factory, init_db
from crm.core.security import hash_password
from crm.models.user import User, UserRole
from crm.services.plans import seed_plans


@click.group()
def cli():
    """MiniCRM CLI tools."""


@cli.command("seed-plans")
def seed_plans_command():
    """Insert the default Free/Basic/Professional/Enterprise plans if missing."""

    async def run() -> int:
        await init_db()
        async with async_session_factory() as session:
            return await seed_plans(session)

    added = asyncio.run(run())
    click.echo(f"✓ Seeded {added} subscription plan(s)")


@cli.command("create-platform-user")
@click.option("--email", required=True, help="Login email")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--first-name", default="", help="First name")
@click.option("--last-name", default="", help="Last name")
@click.option(
    "--role",
    type=click.Choice([UserRole.SAAS_OWNER, UserRole.SAAS_ADMIN]),
    default=UserRole.SAAS_ADMIN,
    show_default=True,
)
def create_platform_user(email: str, password: str, first_name: str, last_name: str, role: str):
    """Create a platform operator who belongs to no tenant."""
    if len(password) < 8:
        raise click.BadParameter("must be at least 8 characters", param_hint="--password")

    async def run() -> User:
        await init_db()
        async with async_session_factory() as session:
            existing = await session.execute(select(User).where(User.email == email.lower()))
            if existing.scalar_one_or_none():
                raise click.ClickException(f"User already exists: {email}")
            user = User(
                tenant_id=None,
                email=email.lower(),
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=UserRole(role),
            )
            session.add(user)
            await session.commit()
            return user

    user = asyncio.run(run())
    click.echo(f"✓ Created {user.role} {user.email}")
    click.echo(f"  ID: {user.id}")


if __name__ == "__main__":
    cli()
