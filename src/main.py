#!/usr/bin/env python3
"""
CRM Rules Engine - Main entry point
"""
import argparse
import asyncio
import json
import logging
import os
import sys

# Add the parent directory to Python path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from src.config import get_settings
from src.database import get_db_session, init_db
from src.rules import RulesConfig, RulesEngine, sync_rules_from_config
from src.workflows import WorkflowEngine

logger = structlog.get_logger()


def configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, stream=sys.stderr)
    # Quiet library loggers
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    # stdout carries the command's JSON result
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


async def load_rules(db, account_id: str, user_id: str, rules_file: str) -> RulesConfig:
    """Load rules from a configuration file and replace the account's rules with them"""
    try:
        with open(rules_file, 'r') as f:
            rules_data = json.load(f)

        rules_config = RulesConfig(**rules_data)
        await sync_rules_from_config(db, account_id, user_id, rules_config)
        return rules_config

    except Exception as e:
        logger.error("Error loading rules", file=rules_file, error=str(e))
        raise


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='CRM email rules and call workflow engine')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init-db', help='Create database tables')

    load = subparsers.add_parser('load-rules', help='Replace an account\'s rules from a JSON file')
    load.add_argument('--account-id', required=True)
    load.add_argument('--user-id', required=True)
    load.add_argument('--file', help='Rules file (defaults to RULES_FILE)')

    run_email = subparsers.add_parser('run-email', help='Run email rules for a stored email')
    run_email.add_argument('email_id')

    run_call = subparsers.add_parser('run-call', help='Run call workflows for an analysed call record')
    run_call.add_argument('call_record_id')

    test_rule = subparsers.add_parser('test-rule', help='Check a rule against an email without acting')
    test_rule.add_argument('rule_id')
    test_rule.add_argument('email_id')

    return parser.parse_args(argv)


async def run(args) -> dict:
    settings = get_settings()
    await init_db()
    if args.command == 'init-db':
        return {'initialized': True}

    async with get_db_session() as db:
        if args.command == 'load-rules':
            rules_config = await load_rules(db, args.account_id, args.user_id, args.file or settings.rules_file)
            return {'loaded_rules': len(rules_config.rules)}
        if args.command == 'run-email':
            return (await RulesEngine(db).execute_rules_for_email(args.email_id)).to_dict()
        if args.command == 'run-call':
            summary = await WorkflowEngine(db).check_and_execute_workflows(args.call_record_id)
            return summary.to_dict()
        if args.command == 'test-rule':
            return (await RulesEngine(db).test_rule(args.rule_id, args.email_id)).to_dict()
    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None):
    """Main entry point for the CRM rules engine"""
    args = parse_args(argv)
    configure_logging(get_settings().log_level)
    try:
        result = asyncio.run(run(args))
    except Exception as e:
        logger.error("Command failed", command=args.command, error=str(e))
        raise
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
