# hopbot/config.py
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG: Dict[str, Any] = {
    'system': {
        'environment': 'live',
        'dry_run': False,
        'log_level': 'INFO',
    },
    'exchange': {
        'name': 'kraken',
    },
    'market': {
        'asset_a': 'BTC',
        'asset_b': 'ETH',
        'quote': 'EUR',
        # Websocket pair ids feeding the three price slots.
        # The cross pair has B as base and A as quote.
        'books': {
            'asset_a_quote': 'XBT/EUR',
            'asset_b_quote': 'ETH/EUR',
            'cross': 'ETH/XBT',
        },
        'cross_symbol': 'ETH/BTC',
        'price_decimals': 5,
        'book_depth': 10,
    },
    'strategy': {
        'hop_out_of_a_threshold': 0.02,
        'hop_out_of_b_threshold': 0.05,
    },
    'loop': {
        'tick_interval_seconds': 5,
        'pending_interval_seconds': 30,
        'reconnect_cooldown_seconds': 10,
        'max_balance_failures': 1,
    },
    'persistence': {
        'current_order': 'last.json',
        'last_completed_order': 'last_completed.json',
    },
    'audit': {
        'trade_log': 'logs/trades.csv',
    },
    'telegram': {
        'enabled': True,
        'poll_timeout_seconds': 30,
    },
    'ui': {
        'dashboard': False,
    },
    'performance': {
        'network_timeout_ms': 10000,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> None:
    if os.getenv('HOPBOT_DRY_RUN'):
        cfg['system']['dry_run'] = os.environ['HOPBOT_DRY_RUN'].lower() in ('1', 'true', 'yes')
    if os.getenv('HOPBOT_LOG_LEVEL'):
        cfg['system']['log_level'] = os.environ['HOPBOT_LOG_LEVEL'].upper()


def validate_config(cfg: Dict[str, Any]) -> None:
    """Fail fast on settings the bot cannot run with."""
    loop = cfg['loop']
    for key in ('tick_interval_seconds', 'pending_interval_seconds', 'reconnect_cooldown_seconds'):
        if float(loop[key]) <= 0:
            raise ValueError(f"loop.{key} must be positive")
    if int(loop['max_balance_failures']) < 1:
        raise ValueError("loop.max_balance_failures must be at least 1")

    strategy = cfg['strategy']
    a = float(strategy['hop_out_of_a_threshold'])
    b = float(strategy['hop_out_of_b_threshold'])
    for name, value in (('hop_out_of_a_threshold', a), ('hop_out_of_b_threshold', b)):
        if not 0 < value < 1:
            raise ValueError(f"strategy.{name} must be between 0 and 1, got {value}")
    if b < a:
        raise ValueError("strategy.hop_out_of_b_threshold must not be below hop_out_of_a_threshold")

    market = cfg['market']
    books = market['books']
    missing = [k for k in ('asset_a_quote', 'asset_b_quote', 'cross') if not books.get(k)]
    if missing:
        raise ValueError(f"Missing market.books entries: {', '.join(missing)}")
    if len({books['asset_a_quote'], books['asset_b_quote'], books['cross']}) != 3:
        raise ValueError("market.books must name three distinct pairs")
    if int(market['price_decimals']) < 0:
        raise ValueError("market.price_decimals must not be negative")


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Reads the YAML config (default `config.yaml`, or $HOPBOT_CONFIG) over the
    built-in defaults. Returns a fresh dict the caller may mutate.
    """
    path = Path(path or os.getenv('HOPBOT_CONFIG') or 'config.yaml')
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open('r', encoding='utf-8') as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config must be a YAML mapping; got {type(raw).__name__}")

    cfg = _merge(DEFAULT_CONFIG, raw)
    _apply_env_overrides(cfg)
    validate_config(cfg)
    return cfg
