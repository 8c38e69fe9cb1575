#!/usr/bin/env python3
"""
Pet Price Comparator - Unit Price Maintenance

Usage:
    python3 main.py import products.json
    python3 main.py unit-prices
    python3 main.py unit-prices --limit 500
    python3 main.py group
    python3 main.py stats
    python3 main.py serve --host 0.0.0.0 --port 8000
"""

import sys
import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from services.config import AppConfig, load_config
from services.database import Database, StorageError, RetryExhausted
from services.database.import_products import import_products_from_file
from services.jobs import update_all_unit_prices, update_product_groups

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig):
    """Console logging, plus a rotating log file when one is configured."""
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S'
    )

    if config.logging.file:
        log_file = Path(config.logging.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file,
            maxBytes=config.logging.max_bytes,
            backupCount=config.logging.backup_count,
            encoding='utf-8'
        )
        handler.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s'))
        logging.getLogger().addHandler(handler)


def get_option(args: List[str], name: str, default: Optional[str] = None) -> Optional[str]:
    """Read `--name value` or `--name=value` from the argument list."""
    for i, arg in enumerate(args):
        if arg.startswith(f'{name}='):
            return arg.split('=', 1)[1]
        if arg == name and i + 1 < len(args):
            return args[i + 1]
    return default


def open_database(config: AppConfig) -> Database:
    db = Database(str(config.database.path), timeout=config.database.connect_timeout)
    db.init_schema()
    return db


def cmd_import(config: AppConfig, file_path: str):
    """Load a JSON product export into the database."""
    with open_database(config) as db:
        result = import_products_from_file(db, Path(file_path))
    logger.info(f"Import done: {result['imported']} imported, {result['skipped']} skipped")
    return result


def cmd_unit_prices(config: AppConfig, limit: Optional[int] = None):
    """Compute and store price per kg for every product."""
    with open_database(config) as db:
        result = update_all_unit_prices(db, limit=limit, config=config)
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return result


def cmd_group(config: AppConfig):
    """Rebuild the stored product groups."""
    with open_database(config) as db:
        result = update_product_groups(db, config=config)
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return result


def cmd_stats(config: AppConfig):
    """Print product and group counts."""
    with open_database(config) as db:
        stats = db.get_stats()
    print(json.dumps(stats, indent=2))
    return stats


def cmd_serve(host: str, port: int):
    """Run the comparison API."""
    import uvicorn
    from api.main import app

    logger.info(f"Serving API on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port)


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    config = load_config()
    setup_logging(config)

    cmd = sys.argv[1]
    args = sys.argv[2:]

    try:
        if cmd == 'import':
            if not args:
                print("Missing file: python3 main.py import products.json")
                sys.exit(1)
            cmd_import(config, args[0])
        elif cmd == 'unit-prices':
            limit = get_option(args, '--limit')
            cmd_unit_prices(config, int(limit) if limit else None)
        elif cmd == 'group':
            cmd_group(config)
        elif cmd == 'stats':
            cmd_stats(config)
        elif cmd == 'serve':
            host = get_option(args, '--host', '127.0.0.1')
            port = int(get_option(args, '--port', '8000'))
            cmd_serve(host, port)
        else:
            print(f"Unknown command: {cmd}")
            print(__doc__)
            sys.exit(1)
    except (StorageError, RetryExhausted) as e:
        logger.error(f"Database unavailable: {e}")
        sys.exit(2)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == '__main__':
    main()
