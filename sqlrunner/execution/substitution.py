# sqlrunner/execution/substitution.py
"""
SQLCMD-style scripting variables.

A placeholder is written $(Name) anywhere in the statement text and is replaced
textually before the statement is sent to the database. Values are NOT bound
as parameters, so callers must not pass untrusted input as a variable value.
"""

import logging
import re
from typing import Dict, Iterable, List, Set

from sqlrunner.errors import InputError

logger = logging.getLogger(__name__)

VARIABLE_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
PLACEHOLDER_RE = re.compile(r'\$\(([A-Za-z_][A-Za-z0-9_]*)\)')


def parse_variables(pairs: Iterable[str]) -> Dict[str, str]:
    """Parses Name=Value tokens into a variables map.

    Names follow SQLCMD rules and are compared case-insensitively, so
    'UserName' and 'username' count as the same variable.

    Args:
        pairs: Tokens as given on the command line.

    Returns:
        Dict of variable name to value, in the order given.

    Raises:
        InputError: If a token is malformed or a name is repeated.
    """
    variables: Dict[str, str] = {}
    seen: Set[str] = set()

    for pair in pairs or []:
        if '=' not in pair:
            raise InputError(f"Variable '{pair}' must be written as Name=Value.")

        name, value = pair.split('=', 1)
        name = name.strip()
        if not VARIABLE_NAME_RE.match(name):
            raise InputError(f"Invalid variable name '{name}'.")

        key = name.lower()
        if key in seen:
            raise InputError(f"Variable '{name}' is defined more than once.")
        seen.add(key)
        variables[name] = value

    return variables


def substitute_variables(text: str, variables: Dict[str, str]) -> str:
    """Replaces every $(Name) placeholder with its value.

    Unknown placeholders are left as-is.

    Args:
        text: Statement text.
        variables: Name to value map.

    Returns:
        The statement with placeholders replaced.
    """
    lookup = {name.lower(): value for name, value in (variables or {}).items()}
    missing: List[str] = []

    def _replace(match: 're.Match') -> str:
        name = match.group(1)
        value = lookup.get(name.lower())
        if value is None:
            if name not in missing:
                missing.append(name)
            return match.group(0)
        return value

    result = PLACEHOLDER_RE.sub(_replace, text)

    if missing:
        logger.warning(f"No value supplied for variable(s): {', '.join(missing)}. Left unchanged.")

    return result
