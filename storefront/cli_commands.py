"""
Flask CLI commands for storefront administration.

Commands:
- flask init-db: Create every table
- flask create-discount-code: Create a discount code
- flask deactivate-discount-code CODE: Stop a code from being accepted
"""

import click
from storefront.database import db_session, create_all
from storefront.exceptions import StorefrontError
from storefront.services import discount_admin_service


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database schema."""
        create_all()
        click.echo(click.style('✅ Database tables created.', fg='green'))

    @app.cli.command('create-discount-code')
    @click.option('--code', prompt=True, help='Code customers type at checkout')
    @click.option('--type', 'discount_type', type=click.Choice(['percentage', 'fixed']), prompt=True,
                  help='percentage or fixed amount')
    @click.option('--value', 'discount_value', prompt=True, help='Percent (1-100) or fixed amount')
    @click.option('--description', default=None)
    @click.option('--min-order', 'min_order_amount', default=None, help='Minimum order amount')
    @click.option('--max-discount', 'max_discount_amount', default=None, help='Cap for percentage codes')
    @click.option('--usage-limit', type=int, default=None, help='Total uses allowed (empty = unlimited)')
    @click.option('--one-per-customer/--many-per-customer', default=True)
    @click.option('--starts-at', type=click.DateTime(), default=None)
    @click.option('--expires-at', type=click.DateTime(), default=None)
    def create_discount_code(code, discount_type, discount_value, description, min_order_amount,
                             max_discount_amount, usage_limit, one_per_customer, starts_at, expires_at):
        """Create a discount code."""
        fields = dict(
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            description=description,
            min_order_amount=min_order_amount,
            max_discount_amount=max_discount_amount,
            usage_limit=usage_limit,
            one_per_customer=one_per_customer,
            expires_at=expires_at,
        )
        if starts_at is not None:
            fields['starts_at'] = starts_at

        try:
            discount = discount_admin_service.create_discount_code(db_session, created_by='cli', **fields)
        except StorefrontError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            return

        click.echo(click.style('\n✅ Discount code created!', fg='green', bold=True))
        click.echo(f'   Code: {discount.code}')
        click.echo(f'   ID: {discount.id}')
        click.echo(f'   {discount_admin_service.format_discount_display(discount, app.config.get("CURRENCY"))}')

    @app.cli.command('deactivate-discount-code')
    @click.argument('code')
    def deactivate_discount_code(code):
        """Deactivate a discount code."""
        try:
            discount = discount_admin_service.get_by_code(db_session, code)
            discount_admin_service.deactivate_discount_code(db_session, discount.id)
        except StorefrontError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            return
        click.echo(click.style(f'✅ {discount.code} deactivated.', fg='green'))
