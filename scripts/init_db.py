#!/usr/bin/env python3
"""
Create the inspection tables for the configured database and, optionally,
register the first quality head.

The database comes from the active configuration (``--config``, else
INSPECTION_KERNEL_CONFIG, else the packaged defaults; DATABASE_URL
overrides the URL).

Usage:
  python3 scripts/init_db.py [--config PATH]
  python3 scripts/init_db.py --bootstrap-identity UUID --bootstrap-code CODE
"""

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create inspection tables and bootstrap the first quality head")
    p.add_argument("--config", default=None, help="Path to a configuration YAML file")
    p.add_argument(
        "--bootstrap-identity",
        default=None,
        help="Identity UUID to register as the first quality head",
    )
    p.add_argument(
        "--bootstrap-code",
        default=None,
        help="Bootstrap registration code (defaults to the configured code)",
    )
    p.add_argument("--drop", action="store_true", help="Drop all tables first")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = _parse_args(argv)

    from inspection_config import get_active_config
    from inspection_config.bridges import engine_from_config, registration_policy_from_config
    from inspection_config.validator import log_level
    from inspection_kernel.db.engine import create_tables, drop_tables, session_scope
    from inspection_kernel.exceptions import InspectionKernelError
    from inspection_kernel.logging_config import configure_logging
    from inspection_kernel.services.inspection_service import InspectionService

    config = get_active_config(args.config)
    configure_logging(level=log_level(config))
    engine_from_config(config)

    if args.drop:
        drop_tables()
    create_tables()
    print(f"  Tables ready ({config.database.url.split(':', 1)[0]})")

    if not args.bootstrap_identity:
        return 0

    code = args.bootstrap_code or config.registration.bootstrap_code
    try:
        with session_scope() as session:
            service = InspectionService(
                session, registration_policy=registration_policy_from_config(config)
            )
            record = service.bootstrap_quality_head(args.bootstrap_identity, code)
    except (InspectionKernelError, ValueError) as exc:
        logging.getLogger("inspection_kernel.scripts").error(
            "bootstrap_failed", extra={"error": str(exc)}
        )
        print(f"  Bootstrap failed: {exc}", file=sys.stderr)
        return 1

    print(f"  Quality head registered: {record.identity_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
