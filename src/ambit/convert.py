import re
from typing import Any, List, Sequence, Tuple

from ambit.exception import AmbitError

DOLLAR_POSITIONAL = re.compile(r"\$(\d+)")


def convert_sql_params(
    query: str, args: Sequence[Any] = (), positional_sub: str = "%s"
) -> Tuple[str, List[Any]]:
    """Rewrite ``$1``-style placeholders into the marker of a driver

    Arguments are reordered (and repeated) to follow the order in which the
    placeholders appear in the query. A query without any ``$n`` marker is
    returned untouched together with its arguments.
    """
    if not DOLLAR_POSITIONAL.search(query):
        return query, list(args)

    ordered: List[Any] = []

    def _sub(match) -> str:
        index = int(match.group(1))
        if index < 1 or index > len(args):
            raise AmbitError(
                f"Could not properly convert SQL params: ${index} "
                f"with {len(args)} argument(s)"
            )
        ordered.append(args[index - 1])
        return positional_sub

    query = DOLLAR_POSITIONAL.sub(_sub, query)
    return query, ordered
