"""relayctl-postsuper — the constrained queue-action helper.

Meant to be the only queue command the control plane may run through
``sudo``. It accepts exactly one action flag and one queue id, validates
both, and replaces itself with ``postsuper <flag> <id>``::

    relayctl-postsuper -h 3F2A1B4C5D     # hold
    relayctl-postsuper -H 3F2A1B4C5D     # release
    relayctl-postsuper -d 3F2A1B4C5D     # delete
"""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence

from relayctl.core.exceptions import InjectionRejectedError
from relayctl.queue.controller import QueueAction
from relayctl.queue.inspector import validate_queue_id

DEFAULT_POSTSUPER = "/usr/sbin/postsuper"
USAGE = "usage: relayctl-postsuper -h|-H|-d QUEUE_ID"


def build_argv(args: Sequence[str], postsuper: str = DEFAULT_POSTSUPER) -> list[str]:
    """Validate helper arguments and return the postsuper argv."""
    if len(args) != 2:
        raise InjectionRejectedError(USAGE)
    flag, queue_id = args
    if flag not in {a.value for a in QueueAction}:
        raise InjectionRejectedError(f"unsupported action: {flag!r}")
    validate_queue_id(queue_id)
    return [postsuper, flag, queue_id]


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        command = build_argv(args)
    except InjectionRejectedError as exc:
        print(f"relayctl-postsuper: {exc}", file=sys.stderr)
        return 2
    os.execv(command[0], command)
    return 0  # unreachable


if __name__ == "__main__":
    sys.exit(main())
