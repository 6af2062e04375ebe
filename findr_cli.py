#!/usr/bin/env python3
"""
findr CLI: Functions requests, secrets checks and subscription management.
Every command exits 0 on success and 1 on any error.
"""
import functools
import json
import logging
import sys

import click
from dotenv import load_dotenv
from tabulate import tabulate

load_dotenv()

from config import Config  # noqa: E402
from core.errors import FindrError, ValidationError  # noqa: E402

logger = logging.getLogger('findr')


class _JsonFormatter(logging.Formatter):
    """Produce valid JSON log lines even when message contains quotes/newlines."""
    def format(self, record):
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(level=logging.INFO, fmt=None):
    handler = logging.StreamHandler()
    if (fmt or Config.LOG_FORMAT) == 'text':
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
    else:
        handler.setFormatter(_JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


def fatal_on_error(fn):
    """Log any error with context and exit 1."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except click.ClickException:
            raise
        except FindrError as e:
            logger.error("%s failed: %s", fn.__name__, e)
            sys.exit(1)
        except Exception:
            logger.exception("%s failed with an unexpected error", fn.__name__)
            sys.exit(1)
    return wrapper


def _bridge():
    from services.chain_bridge import get_bridge
    return get_bridge()


@click.group()
@click.option('--log-format', type=click.Choice(['json', 'text']), default=None, help='Log line format')
@click.option('-v', '--verbose', is_flag=True, help='Debug logging')
def cli(log_format, verbose):
    """findr - Functions oracle requests and subscription tooling"""
    configure_logging(logging.DEBUG if verbose else logging.INFO, log_format)


@cli.command()
@click.option('--restaurant-id', default=1, show_default=True, type=int)
@click.option('--review', help='Review text to score')
@click.option('--review-file', type=click.Path(exists=True, dir_okay=False), help='Read the review from a file')
@click.option('--secrets-url', 'secrets_urls', multiple=True,
              help='Remote secrets URL (repeatable); default is inline secrets hosted in a gist')
@click.option('--timeout', type=float, default=None, help='Seconds to wait for fulfillment')
@fatal_on_error
def request(restaurant_id, review, review_file, secrets_urls, timeout):
    """Submit a review for scoring and wait for the oracle response."""
    from services.request_service import FunctionsRequestService
    from services.secrets_service import build_secrets_service

    if review_file:
        with open(review_file, encoding='utf-8') as f:
            review = f.read()
    if not review:
        raise ValidationError("Provide --review or --review-file")

    bridge = _bridge()
    if secrets_urls:
        secrets = list(secrets_urls)
        secrets_service = build_secrets_service(bridge, inline=False)
    else:
        secrets = {'apiKey': Config.require('OPENAI_API_KEY')}
        secrets_service = build_secrets_service(bridge, inline=True)

    svc = FunctionsRequestService(bridge, secrets_service, gist_client=secrets_service.gist_client,
                                  timeout=timeout)
    result = svc.run(restaurant_id, review, secrets)
    click.echo(f"Request {result.request_id} fulfilled: score={result.response_int}")


@cli.command()
@click.argument('text', required=False)
@click.option('--file', 'text_file', type=click.Path(exists=True, dir_okay=False))
@fatal_on_error
def score(text, text_file):
    """Score a review locally with the completion API (no on-chain request)."""
    from services.review_scoring import ReviewScorer

    if text_file:
        with open(text_file, encoding='utf-8') as f:
            text = f.read()
    if not text:
        raise ValidationError("Provide TEXT or --file")
    click.echo(f"AI-generated probability: {ReviewScorer().score(text)}")


@cli.command('verify-secrets')
@click.argument('urls', nargs=-1, required=True)
@fatal_on_error
def verify_secrets(urls):
    """Check that remote secrets URLs agree and cover every DON node."""
    from services.secrets_service import verify_offchain_secrets

    verify_offchain_secrets(list(urls), _bridge().get_node_addresses())
    click.echo(click.style("Verified", fg='green') + f" {len(urls)} secrets URL(s)")


@cli.command('create-subscription')
@fatal_on_error
def create_subscription():
    """Create a new Functions billing subscription."""
    from services.subscription_service import SubscriptionService

    subscription_id = SubscriptionService(_bridge()).create_subscription()
    click.echo(f"Subscription created with ID: {subscription_id}")


@cli.command('fund-subscription')
@click.option('--subscription-id', type=int, default=None)
@click.option('--amount', default=None, help='LINK to send (default LINK_AMOUNT)')
@fatal_on_error
def fund_subscription(subscription_id, amount):
    """Fund a subscription with LINK."""
    from services.subscription_service import SubscriptionService

    subscription_id = subscription_id or Config.require('SUBSCRIPTION_ID')
    juels = SubscriptionService(_bridge()).fund(subscription_id, amount or Config.LINK_AMOUNT)
    click.echo(f"Subscription {subscription_id} funded with {juels} Juels (1 LINK = 10^18 Juels)")


@cli.command('add-consumer')
@click.option('--subscription-id', type=int, default=None)
@click.option('--consumer', default=None, help='Consumer contract address (default CONSUMER_ADDRESS)')
@fatal_on_error
def add_consumer(subscription_id, consumer):
    """Authorize a consumer contract on a subscription."""
    from services.subscription_service import SubscriptionService

    subscription_id = subscription_id or Config.require('SUBSCRIPTION_ID')
    consumer = consumer or Config.require('CONSUMER_ADDRESS')
    SubscriptionService(_bridge()).add_consumer(subscription_id, consumer)
    click.echo(f"Authorized consumer contract: {consumer}")


@cli.command('setup-subscription')
@click.option('--subscription-id', type=int, default=None)
@click.option('--consumer', default=None)
@click.option('--amount', default=None)
@click.option('--fund/--skip-fund', default=None, help='Fund before authorizing (default FUND_ON_SUBSCRIPTION)')
@fatal_on_error
def setup_subscription(subscription_id, consumer, amount, fund):
    """Fund the subscription (optional) and authorize the consumer contract."""
    from services.subscription_service import SubscriptionService

    result = SubscriptionService(_bridge()).setup(subscription_id, consumer, amount, fund)
    click.echo(f"Subscription {result['subscription_id']} ready for {result['consumer']}")


@cli.command('subscription-info')
@click.option('--subscription-id', type=int, default=None)
@fatal_on_error
def subscription_info(subscription_id):
    """Show balance, owner and consumers of a subscription."""
    from services.subscription_service import JUELS_PER_LINK, SubscriptionService

    subscription_id = subscription_id or Config.require('SUBSCRIPTION_ID')
    info = SubscriptionService(_bridge()).get_subscription(subscription_id)
    rows = [
        ["Subscription", info['subscription_id']],
        ["Owner", info['owner']],
        ["Balance", f"{info['balance'] / JUELS_PER_LINK:g} LINK ({info['balance']} Juels)"],
    ]
    rows += [["Consumer", c] for c in info['consumers']] or [["Consumer", "-"]]
    click.echo(tabulate(rows, tablefmt="simple"))


if __name__ == '__main__':
    cli()
