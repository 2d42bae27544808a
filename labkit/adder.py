"""A minimal CGI program that adds the two numbers in its query string."""

from __future__ import annotations

import os
import re
import sys
from typing import Optional, Sequence

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(text: str) -> int:
    """Leading integer of ``text``, or 0 when it does not start with one."""
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def parse_query(query: str) -> tuple[int, int]:
    """The two numbers of a query of the form ``<n1>&<n2>``.

    Raises ``ValueError`` when the query has no ``&``.
    """
    first, sep, second = query.partition("&")
    if not sep:
        raise ValueError(f"query {query!r} has no '&' between two arguments")
    return _atoi(first), _atoi(second)


def render(query: Optional[str]) -> str:
    """The full CGI response, headers and body, for ``query``."""
    n1, n2 = parse_query(query) if query is not None else (0, 0)
    content = (
        "Welcome to add.com: "
        "THE Internet addition portal.\r\n<p>"
        f"The answer is: {n1} + {n2} = {n1 + n2}\r\n<p>"
        "Thanks for visiting!\r\n"
    )
    return (
        "Connection: close\r\n"
        f"Content-length: {len(content.encode())}\r\n"
        "Content-type: text/html\r\n\r\n"
        f"{content}"
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Write the response for the ``QUERY_STRING`` environment variable."""
    sys.stdout.write(render(os.environ.get("QUERY_STRING")))
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())