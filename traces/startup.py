"""
Process startup checks.

The trace store must be reachable when the server starts; if it is not, the
process exits. Every later failure is handled per request.
"""

import logging
import sys

from django.db import OperationalError, connections

logger = logging.getLogger(__name__)


def verify_trace_store(alias: str = 'default') -> None:
    """
    Open a connection to the trace store and run a trivial query.

    Raises:
        SystemExit: The database could not be reached
    """
    conn = connections[alias]
    try:
        conn.ensure_connection()
        with conn.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
    except OperationalError as e:
        logger.critical(f'Cannot reach trace store ({conn.vendor}): {e}')
        sys.exit(1)

    logger.info(f'Trace store reachable ({conn.vendor} {conn.settings_dict.get("NAME")})')
