import csv
import io
from typing import Callable, Iterator, TypeVar

T = TypeVar("T")


def read_rows(
    text: str, action: Callable[[list[str]], T], has_header: bool = True
) -> Iterator[T]:
    """Lazily maps each CSV record of an export file through `action`.

    Blank lines carry no record and are skipped rather than passed on.
    """
    reader = csv.reader(io.StringIO(text))
    if has_header:
        next(reader, None)
    for fields in reader:
        if not fields:
            continue
        yield action(fields)
