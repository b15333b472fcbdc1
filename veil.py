#!/usr/bin/env python3
"""
Veil - member account services for the Veil game storefront.
Profiles, login email changes, mailing addresses and cards on file, kept
consistent with the Country/Province reference data and the payment provider.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, Optional

from colorama import init, Fore
from dotenv import load_dotenv
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

import database
from app.services import (AddressService, CartService, EmailChangeService,
                          PaymentMethodService, ProfileService)
from identity_provider import HttpIdentityProvider
from payment_gateway import StripeTokenizationClient

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root Veil logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('veil')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


logger = setup_logging()

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: Dict[str, Any] = {
    'database_url': database.DATABASE_URL,
    'stripe_api_key': '',
    'stripe_api_base': StripeTokenizationClient.BASE_URL,
    'identity_provider_url': '',
    'identity_provider_token': '',
    'confirm_email_url': '',
    'api_timeout_seconds': 10,
    'notification_timeout_seconds': 8,
    'prevalidate_province': True,
    'log_level': 'WARNING',
}

# config key -> environment variable that overrides it
ENV_OVERRIDES = {
    'database_url': 'DATABASE_URL',
    'stripe_api_key': 'STRIPE_API_KEY',
    'identity_provider_url': 'IDENTITY_PROVIDER_URL',
    'identity_provider_token': 'IDENTITY_PROVIDER_TOKEN',
    'log_level': 'VEIL_LOG_LEVEL',
}


def is_placeholder_value(value: Any) -> bool:
    """Check if a value is a placeholder sentinel that should not be used for real calls."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_')


def load_config(config_path: str = 'config.json') -> Dict[str, Any]:
    """Load configuration from JSON file with environment variable support.

    Precedence, lowest first: built-in defaults, *config_path*, environment
    (``.env`` included).  Placeholder values (``YOUR_...``) are dropped so
    they fall back to the defaults.
    """
    load_dotenv()
    config = dict(DEFAULT_CONFIG)

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config.update(json.load(f))
        except (IOError, json.JSONDecodeError) as e:
            logger.warning("Could not load %s: %s", config_path, e)
    else:
        logger.warning("Config file '%s' not found, using defaults", config_path)

    for key, env_name in ENV_OVERRIDES.items():
        if os.getenv(env_name):
            config[key] = os.getenv(env_name)

    for key in ('stripe_api_key', 'identity_provider_token', 'identity_provider_url'):
        if is_placeholder_value(config.get(key)):
            config[key] = ''
    return config


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------

class Storefront:
    """Wires configuration, the database session factory, the provider
    clients and the account services together."""

    def __init__(self, config_path: str = 'config.json',
                 config: Optional[Dict[str, Any]] = None) -> None:
        self._log = logging.getLogger('veil.storefront')
        if config is not None:
            self.config = dict(DEFAULT_CONFIG, **config)
        else:
            self.config = load_config(config_path)
        setup_logging(self.config.get('log_level', 'WARNING'))

        if not database.configure(self.config['database_url']):
            self._log.warning("Running without a database")

        if not self.config.get('stripe_api_key'):
            self._log.warning("stripe_api_key is not configured; card attaches will fail")
        self.tokenization_client = StripeTokenizationClient(
            self.config.get('stripe_api_key', ''),
            timeout=int(self.config['api_timeout_seconds']),
            base_url=self.config.get('stripe_api_base') or StripeTokenizationClient.BASE_URL,
        )
        self.identity_provider = HttpIdentityProvider(
            self.config.get('identity_provider_url', ''),
            service_token=self.config.get('identity_provider_token', ''),
            confirm_email_url=self.config.get('confirm_email_url', ''),
            timeout=int(self.config['notification_timeout_seconds']),
        )

        self.address_service = AddressService(
            prevalidate=bool(self.config.get('prevalidate_province', True)))
        self.payment_service = PaymentMethodService(self.tokenization_client)
        self.email_change_service = EmailChangeService(self.identity_provider)
        self.cart_service = CartService()
        self.profile_service = ProfileService()

    def get_db(self):
        """Yield a request-scoped session (see :func:`database.get_db`)."""
        yield from database.get_db()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def cmd_init_db(args, storefront: Storefront) -> int:
    if not database.init_db():
        print(f"{Fore.RED}Error: could not create tables. Check database_url / DATABASE_URL.")
        return 1
    for db in storefront.get_db():
        count = database.seed_reference_data(db)
    print(f"{Fore.GREEN}Tables ready; {count} reference rows added.")
    return 0


def cmd_provinces(args, storefront: Storefront) -> int:
    from app.repositories import ReferenceDataRepository

    for db in storefront.get_db():
        if db is None:
            print(f"{Fore.RED}Error: database not available.")
            return 1
        repo = ReferenceDataRepository(db)
        country = repo.find_country(args.country.upper())
        if country is None:
            print(f"{Fore.RED}Unknown country code: {args.country}")
            return 1
        print(f"{Fore.CYAN}{country.name}")
        for province in repo.list_provinces(country.code):
            print(f"  {province.code}  {province.name}")
    return 0


def cmd_status(args, storefront: Storefront) -> int:
    tables = [database.Member, database.MailingAddress, database.StoredPaymentMethod,
              database.Country, database.Province, database.CartItem]
    for db in storefront.get_db():
        if db is None:
            print(f"{Fore.RED}Error: database not available.")
            return 1
        for model in tables:
            try:
                count = db.scalar(select(func.count()).select_from(model))
                print(f"{model.__tablename__}: {count}")
            except SQLAlchemyError as e:
                print(f"{Fore.RED}{model.__tablename__}: ERROR {e}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Veil member account tools')
    parser.add_argument(
        '--config',
        default='config.json',
        help='Path to config file (default: config.json)'
    )
    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('init-db', help='Create tables and load Country/Province data')
    provinces = sub.add_parser('provinces', help="List a country's provinces/states")
    provinces.add_argument('country', help='Two-letter country code, e.g. CA')
    sub.add_parser('status', help='Show row counts per table')

    args = parser.parse_args(argv)
    storefront = Storefront(args.config)
    handlers = {
        'init-db': cmd_init_db,
        'provinces': cmd_provinces,
        'status': cmd_status,
    }
    return handlers[args.command](args, storefront)


if __name__ == '__main__':
    sys.exit(main())
