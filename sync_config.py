"""
Sync configuration - environment driven settings for the sheet to HubDB sync
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import load_dotenv

DEFAULT_SHEET_NAME = 'Schedule and results'
DEFAULT_SNAPSHOT_KEY = 'GAME_DATA'
DEFAULT_SOURCE = 'google_sheets_sync'


def _env_int(env: Dict[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(env: Dict[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value in (None, ''):
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_bool(env: Dict[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value in (None, ''):
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class SheetLayout:
    """Where things live on the schedule sheet (1-based rows and columns)"""
    data_start_row: int = 4
    remote_id_column: int = 1
    data_first_column: int = 2
    data_column_count: int = 11
    status_column: int = 13
    message_column: int = 14


@dataclass
class SyncSettings:
    endpoint: str
    workbook_path: str
    sheet_name: str = DEFAULT_SHEET_NAME
    layout: Optional[SheetLayout] = None
    snapshot_backend: str = 'file'
    snapshot_path: str = '.sync_state.json'
    snapshot_key: str = DEFAULT_SNAPSHOT_KEY
    snowflake_account: Optional[str] = None
    snowflake_user: Optional[str] = None
    snowflake_password: Optional[str] = None
    snowflake_warehouse: Optional[str] = None
    snowflake_database: str = 'HUBDB_SYNC'
    snowflake_schema: str = 'PUBLIC'
    request_timeout: int = 30
    request_delay: float = 0.1
    max_retries: int = 5
    initial_retry_delay: float = 2
    max_retry_delay: float = 60
    source: str = DEFAULT_SOURCE
    provision_all_on_empty_baseline: bool = True

    def __post_init__(self):
        if self.layout is None:
            self.layout = SheetLayout()


def load_settings(env: Optional[Dict[str, str]] = None, require_endpoint: bool = True) -> SyncSettings:
    """Build settings from environment variables (and a .env file when reading os.environ)"""
    if env is None:
        load_dotenv()
        env = dict(os.environ)

    snapshot_backend = env.get('SNAPSHOT_BACKEND', 'file').strip().lower()
    if snapshot_backend not in ('file', 'snowflake'):
        raise ValueError(f"SNAPSHOT_BACKEND must be 'file' or 'snowflake', got {snapshot_backend!r}")

    # Validate required environment variables
    required_vars = {'SHEET_WORKBOOK_PATH': env.get('SHEET_WORKBOOK_PATH')}
    if require_endpoint:
        required_vars['HUBDB_SYNC_ENDPOINT'] = env.get('HUBDB_SYNC_ENDPOINT')
    if snapshot_backend == 'snowflake':
        for var in ('SNOWFLAKE_ACCOUNT', 'SNOWFLAKE_USER', 'SNOWFLAKE_PASSWORD', 'SNOWFLAKE_WAREHOUSE'):
            required_vars[var] = env.get(var)

    missing_vars = [var for var, value in required_vars.items() if not value]
    if missing_vars:
        raise ValueError(f"Missing required environment variables: {', '.join(missing_vars)}")

    layout = SheetLayout(
        data_start_row=_env_int(env, 'DATA_START_ROW', 4),
        remote_id_column=_env_int(env, 'REMOTE_ID_COLUMN', 1),
        data_first_column=_env_int(env, 'DATA_FIRST_COLUMN', 2),
        data_column_count=_env_int(env, 'DATA_COLUMN_COUNT', 11),
        status_column=_env_int(env, 'SYNC_STATUS_COLUMN', 13),
        message_column=_env_int(env, 'SYNC_MESSAGE_COLUMN', 14),
    )

    return SyncSettings(
        endpoint=env.get('HUBDB_SYNC_ENDPOINT', ''),
        workbook_path=env['SHEET_WORKBOOK_PATH'],
        sheet_name=env.get('SHEET_NAME', DEFAULT_SHEET_NAME),
        layout=layout,
        snapshot_backend=snapshot_backend,
        snapshot_path=env.get('SNAPSHOT_PATH', '.sync_state.json'),
        snapshot_key=env.get('SNAPSHOT_KEY', DEFAULT_SNAPSHOT_KEY),
        snowflake_account=env.get('SNOWFLAKE_ACCOUNT'),
        snowflake_user=env.get('SNOWFLAKE_USER'),
        snowflake_password=env.get('SNOWFLAKE_PASSWORD'),
        snowflake_warehouse=env.get('SNOWFLAKE_WAREHOUSE'),
        snowflake_database=env.get('SNOWFLAKE_DATABASE', 'HUBDB_SYNC'),
        snowflake_schema=env.get('SNOWFLAKE_SCHEMA', 'PUBLIC'),
        request_timeout=_env_int(env, 'REQUEST_TIMEOUT_SECONDS', 30),
        request_delay=_env_float(env, 'REQUEST_DELAY_SECONDS', 0.1),
        max_retries=_env_int(env, 'MAX_RETRIES', 5),
        initial_retry_delay=_env_float(env, 'INITIAL_RETRY_DELAY', 2),
        max_retry_delay=_env_float(env, 'MAX_RETRY_DELAY', 60),
        source=env.get('SYNC_SOURCE', DEFAULT_SOURCE),
        provision_all_on_empty_baseline=_env_bool(env, 'PROVISION_ALL_ON_EMPTY_BASELINE', True),
    )
