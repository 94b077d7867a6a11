"""
Command-line token handling shared by the dflow entry points.

Tokens following the command name fall in three groups:

    - flags, starting with "-"
    - configuration overrides, of the form KEY=VALUE
    - service names, everything else
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

OVERRIDE_PATTERN = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$", re.DOTALL)


@dataclass
class CommandLine:
    targets: List[str] = field(default_factory=list)
    overrides: Dict[str, str] = field(default_factory=dict)
    flags: List[str] = field(default_factory=list)


def split_tokens(tokens: Sequence[str]) -> CommandLine:
    """
    Split command arguments into targets, overrides and flags.

    Later overrides of the same key win. Target order is preserved.

    Example:
        .. code-block:: python

            split_tokens(["bcreg-agent", "LOG_LEVEL=DEBUG", "-f"])
            # CommandLine(targets=['bcreg-agent'], overrides={'LOG_LEVEL': 'DEBUG'}, flags=['-f'])
    """
    command_line = CommandLine()
    for token in tokens:
        if token.startswith("-"):
            command_line.flags.append(token)
            continue
        match = OVERRIDE_PATTERN.match(token)
        if match:
            command_line.overrides[match.group(1)] = match.group(2)
        else:
            command_line.targets.append(token)
    return command_line
