# services/identity.py - Operator identity for operation records
#
# There is no login: the operator is the name saved in local settings,
# else the config.json default, else "local".

import logging
import sqlite3

from config import load_default_operator

logger = logging.getLogger(__name__)


def get_current_operator(store=None) -> str:
    """
    Operator name stamped on check-out/check-in/use/delay records.
    Returns the saved operator_name setting, the configured default, or "local".
    """
    name = ""
    if store is not None:
        try:
            name = store.get_setting("operator_name", "") or ""
        except sqlite3.Error as e:
            logger.warning("Could not read operator setting: %s", e)
    name = str(name).strip() or load_default_operator()
    return name or "local"
